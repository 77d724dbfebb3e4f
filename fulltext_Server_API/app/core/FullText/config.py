"""
Configuration management for the full-text service.

Settings are read from the ``[fulltext]`` table of a TOML file and can be overridden by
environment variables:

    FULLTEXT_DB_PATH            primary store SQLite path
    FULLTEXT_INDEX_BACKEND      "sqlite" or "elasticsearch"
    FULLTEXT_INDEX_DB_PATH      SQLite search index path
    FULLTEXT_ES_HOSTS           comma-separated Elasticsearch URLs
    FULLTEXT_INDEX_READ_ALIAS   read handle name
    FULLTEXT_INDEX_WRITE_ALIAS  write handle name
    FULLTEXT_LOG_LEVEL          loguru level
    FULLTEXT_LOG_FILE           optional log file path

In-memory SQLite paths (``:memory:``) are rejected: every thread would get its own empty
database.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import tomli
from loguru import logger

from fulltext_Server_API.app.core.FullText.exceptions import FullTextConfigurationError
from fulltext_Server_API.app.core.FullText.search_index import IndexHandles


SUPPORTED_INDEX_BACKENDS = ("sqlite", "elasticsearch")


@dataclass
class PrimaryStoreConfig:
    """Configuration for the SQLite primary store."""
    db_path: str = "./fulltext_data/databases/fulltext.db"
    busy_timeout: float = 15.0


@dataclass
class SearchIndexConfig:
    """Configuration for the search index."""
    backend: str = "sqlite"
    read_alias: str = "item_fulltext_index_read"
    write_alias: str = "item_fulltext_index_write"
    # alias -> physical collection, used by the sqlite backend
    aliases: Dict[str, str] = field(default_factory=lambda: {
        "item_fulltext_index_read": "item_fulltext",
        "item_fulltext_index_write": "item_fulltext",
    })
    mget_batch_size: int = 100
    search_max_results: int = 1000

    # sqlite backend
    db_path: str = "./fulltext_data/databases/fulltext_index.db"

    # elasticsearch backend
    hosts: List[str] = field(default_factory=lambda: ["http://localhost:9200"])
    api_key: Optional[str] = None
    request_timeout: float = 30.0

    @property
    def handles(self) -> IndexHandles:
        return IndexHandles(read=self.read_alias, write=self.write_alias)


@dataclass
class FullTextConfig:
    """Main configuration class for the full-text service."""
    primary: PrimaryStoreConfig = field(default_factory=PrimaryStoreConfig)
    index: SearchIndexConfig = field(default_factory=SearchIndexConfig)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_toml(cls, config_path: Optional[Path] = None) -> 'FullTextConfig':
        """
        Load configuration from a TOML file, then apply environment overrides.

        Args:
            config_path: Path to config file. If None, the default locations are tried.

        Returns:
            FullTextConfig instance
        """
        if config_path is None:
            possible_paths = [
                Path(os.getenv("FULLTEXT_CONFIG", "")) if os.getenv("FULLTEXT_CONFIG") else None,
                Path.home() / ".config" / "fulltext" / "config.toml",
                Path("config.toml"),
                Path(__file__).parent.parent.parent.parent / "Config_Files" / "config.toml",
            ]
            config_path = next((path for path in possible_paths if path and path.exists()), None)

        if config_path is None:
            logger.warning("No full-text config file found, using defaults")
            config = cls()
        else:
            logger.info(f"Loading full-text config from: {config_path}")
            try:
                with open(config_path, "rb") as f:
                    toml_data = tomli.load(f)
            except (OSError, tomli.TOMLDecodeError) as e:
                raise FullTextConfigurationError(f"Could not read config file {config_path}: {e}",
                                                 original_error=e) from e
            config = cls.from_dict(toml_data.get("fulltext", {}))

        config.apply_env_overrides()
        config.validate()
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FullTextConfig':
        primary = _build_section(PrimaryStoreConfig, data.get("primary", {}))
        index = _build_section(SearchIndexConfig, data.get("index", {}))
        top_level = {k: v for k, v in data.items() if k in ("log_level", "log_file")}
        if "log_level" in top_level:
            top_level["log_level"] = str(top_level["log_level"]).upper()
        return cls(primary=primary, index=index, **top_level)

    def apply_env_overrides(self) -> None:
        env = os.environ
        if env.get("FULLTEXT_DB_PATH"):
            self.primary.db_path = env["FULLTEXT_DB_PATH"]
        if env.get("FULLTEXT_INDEX_BACKEND"):
            self.index.backend = env["FULLTEXT_INDEX_BACKEND"].lower()
        if env.get("FULLTEXT_INDEX_DB_PATH"):
            self.index.db_path = env["FULLTEXT_INDEX_DB_PATH"]
        if env.get("FULLTEXT_ES_HOSTS"):
            self.index.hosts = [h.strip() for h in env["FULLTEXT_ES_HOSTS"].split(",") if h.strip()]
        if env.get("FULLTEXT_INDEX_READ_ALIAS"):
            self.index.read_alias = env["FULLTEXT_INDEX_READ_ALIAS"]
        if env.get("FULLTEXT_INDEX_WRITE_ALIAS"):
            self.index.write_alias = env["FULLTEXT_INDEX_WRITE_ALIAS"]
        if env.get("FULLTEXT_LOG_LEVEL"):
            self.log_level = env["FULLTEXT_LOG_LEVEL"].upper()
        if env.get("FULLTEXT_LOG_FILE"):
            self.log_file = env["FULLTEXT_LOG_FILE"]

    def validate(self) -> None:
        if self.index.backend not in SUPPORTED_INDEX_BACKENDS:
            raise FullTextConfigurationError(
                f"Unknown index backend '{self.index.backend}' (expected one of {', '.join(SUPPORTED_INDEX_BACKENDS)})",
                config_key="index.backend")
        if not self.index.read_alias or not self.index.write_alias:
            raise FullTextConfigurationError("Index read and write aliases must be set", config_key="index")
        if self.index.mget_batch_size < 1:
            raise FullTextConfigurationError("mget_batch_size must be at least 1", config_key="index.mget_batch_size")
        if self.index.search_max_results < 1:
            raise FullTextConfigurationError("search_max_results must be at least 1",
                                             config_key="index.search_max_results")
        if self.index.backend == "elasticsearch" and not self.index.hosts:
            raise FullTextConfigurationError("Elasticsearch backend needs at least one host", config_key="index.hosts")
        if self.primary.db_path == ":memory:":
            raise FullTextConfigurationError("The primary store needs a database file, not :memory:",
                                             config_key="primary.db_path")
        if self.index.backend == "sqlite" and self.index.db_path == ":memory:":
            raise FullTextConfigurationError("The SQLite search index needs a database file, not :memory:",
                                             config_key="index.db_path")
        try:
            logger.level(self.log_level)
        except ValueError as e:
            raise FullTextConfigurationError(f"Unknown log level '{self.log_level}'", config_key="log_level",
                                             original_error=e) from e


def _build_section(section_cls, values: Dict[str, Any]):
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        logger.warning(f"Ignoring unknown {section_cls.__name__} keys: {', '.join(sorted(unknown))}")
    return section_cls(**{k: v for k, v in values.items() if k in known})

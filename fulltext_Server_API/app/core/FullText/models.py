# models.py
# Description: Data model for full-text records, index documents and merged item data
#
# Imports
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union
#
# Third-Party Libraries
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
#
########################################################################################################################
#
# Constants:

# Attribute/field names of the four content statistics, in wire order
STATS_FIELDS = ('indexedChars', 'totalChars', 'indexedPages', 'totalPages')
STATS_COLUMNS = ('indexed_chars', 'total_chars', 'indexed_pages', 'total_pages')

ATTACHMENT_ITEM_TYPE = "attachment"

PRIMARY_TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'
INDEX_TIMESTAMP_FORMAT = '%Y-%m-%dT%H:%M:%S'


#
# Helpers:

def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_timestamp(ts: Union[str, datetime, int, float, None]) -> Optional[datetime]:
    """
    Parses a stored timestamp into an aware UTC datetime.

    Accepts both the primary store's space-separated form and ISO-8601 (``T`` separator, optional
    ``Z``), as well as Unix timestamps. Naive values are assumed to be UTC.
    """
    if ts is None or ts == "":
        return None
    if isinstance(ts, datetime):
        dt = ts
    elif isinstance(ts, (int, float)):
        return datetime.fromtimestamp(ts, timezone.utc)
    else:
        try:
            dt = datetime.fromisoformat(ts.replace('Z', '+00:00'))
        except ValueError:
            try:
                dt = datetime.strptime(ts, PRIMARY_TIMESTAMP_FORMAT)
            except ValueError:
                logger.warning(f"Could not parse timestamp string: {ts}")
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_primary_timestamp(ts: datetime) -> str:
    return parse_timestamp(ts).strftime(PRIMARY_TIMESTAMP_FORMAT)


def format_index_timestamp(ts: datetime) -> str:
    """Strict ISO-8601 with a ``T`` separator and no space, as the index expects."""
    return parse_timestamp(ts).strftime(INDEX_TIMESTAMP_FORMAT)


def make_document_id(library_id: int, key: str) -> str:
    return f"{library_id}/{key}"


def split_document_id(doc_id: str) -> tuple:
    library_id, key = doc_id.split("/", 1)
    return int(library_id), key


def _to_int(value: Any) -> int:
    # Missing attributes arrive as "" or None; both count as 0
    if value is None or value == "":
        return 0
    return int(value)


#
# Classes:

@dataclass
class Item:
    """The slice of an item that the full-text core needs to know about."""
    library_id: int
    key: str
    item_type: str = ATTACHMENT_ITEM_TYPE

    @property
    def is_attachment(self) -> bool:
        return self.item_type == ATTACHMENT_ITEM_TYPE


@dataclass
class FullTextStats:
    indexed_chars: int = 0
    total_chars: int = 0
    indexed_pages: int = 0
    total_pages: int = 0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'FullTextStats':
        """Builds stats from either wire names (``indexedChars``) or column names (``indexed_chars``)."""
        if not data:
            return cls()
        values = {}
        for wire_name, column in zip(STATS_FIELDS, STATS_COLUMNS):
            if wire_name in data:
                values[column] = _to_int(data[wire_name])
            elif column in data:
                values[column] = _to_int(data[column])
        return cls(**values)

    def to_wire(self) -> Dict[str, int]:
        return {wire: getattr(self, column) for wire, column in zip(STATS_FIELDS, STATS_COLUMNS)}

    def to_columns(self) -> Dict[str, int]:
        return {column: getattr(self, column) for column in STATS_COLUMNS}


@dataclass
class FullTextRecord:
    """A row of the primary store: the source of truth for existence and content."""
    library_id: int
    key: str
    content: str
    version: int
    timestamp: datetime
    stats: FullTextStats = field(default_factory=FullTextStats)

    @classmethod
    def from_row(cls, row) -> 'FullTextRecord':
        return cls(
            library_id=row['library_id'],
            key=row['item_key'],
            content=row['content'],
            version=row['version'],
            timestamp=parse_timestamp(row['timestamp']),
            stats=FullTextStats.from_mapping({column: row[column] for column in STATS_COLUMNS}),
        )

    def to_index_document(self, language: Optional[str] = None) -> 'IndexDocument':
        return IndexDocument(
            library_id=self.library_id,
            key=self.key,
            content=self.content,
            version=self.version,
            timestamp=self.timestamp,
            stats=self.stats,
            language=language,
        )

    def to_item_data(self) -> 'FullTextItemData':
        return FullTextItemData(
            library_id=self.library_id,
            key=self.key,
            content=self.content,
            version=self.version,
            **self.stats.to_columns(),
        )


@dataclass
class IndexDocument:
    """The search index's projection of a record, keyed by ``"{libraryID}/{key}"``."""
    library_id: int
    key: str
    content: str
    version: int
    timestamp: Optional[datetime] = None
    stats: FullTextStats = field(default_factory=FullTextStats)
    language: Optional[str] = None

    @property
    def id(self) -> str:
        return make_document_id(self.library_id, self.key)

    def to_source(self) -> Dict[str, Any]:
        # The version is duplicated into the source so it can be read back; the index's own
        # version metadata is not searchable.
        source = {
            'id': self.id,
            'libraryID': self.library_id,
            'content': self.content,
            'version': self.version,
            'timestamp': format_index_timestamp(self.timestamp) if self.timestamp else None,
        }
        source.update(self.stats.to_wire())
        if self.language is not None:
            source['language'] = self.language
        return source

    @classmethod
    def from_source(cls, doc_id: str, source: Mapping[str, Any]) -> 'IndexDocument':
        library_id, key = split_document_id(doc_id)
        return cls(
            library_id=library_id,
            key=key,
            content=source.get('content') or "",
            version=int(source['version']),
            timestamp=parse_timestamp(source.get('timestamp')),
            stats=FullTextStats.from_mapping(source),
            language=source.get('language'),
        )

    def to_item_data(self) -> 'FullTextItemData':
        return FullTextItemData(
            library_id=self.library_id,
            key=self.key,
            content=self.content,
            version=self.version,
            language=self.language,
            **self.stats.to_columns(),
        )


class FullTextItemData(BaseModel):
    """
    Merged full-text data for one item, as handed to the serialization layer.

    Populated by field name or by wire alias (``libraryID``, ``indexedChars``, ...).
    """
    library_id: int = Field(..., alias="libraryID")
    key: str
    content: str = ""
    version: int
    indexed_chars: int = Field(0, alias="indexedChars")
    total_chars: int = Field(0, alias="totalChars")
    indexed_pages: int = Field(0, alias="indexedPages")
    total_pages: int = Field(0, alias="totalPages")
    language: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def stats(self) -> FullTextStats:
        return FullTextStats(
            indexed_chars=self.indexed_chars,
            total_chars=self.total_chars,
            indexed_pages=self.indexed_pages,
            total_pages=self.total_pages,
        )

#
# End of models.py
#######################################################################################################################

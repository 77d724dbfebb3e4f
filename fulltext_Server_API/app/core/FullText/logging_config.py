# logging_config.py
# Description: Loguru sink setup for the full-text service
#
# Imports
import logging
import sys
from typing import Iterable, Optional
#
# Third-Party Libraries
from loguru import logger
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = ("<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
              "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>")

# Standard-library loggers of the index client stack
INTERCEPTED_LOGGERS = ("elasticsearch", "elastic_transport", "elastic_transport.transport")


class InterceptHandler(logging.Handler):
    """Forwards standard ``logging`` records to loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", log_file: Optional[str] = None,
                  intercept: Iterable[str] = INTERCEPTED_LOGGERS) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT, colorize=True)
    if log_file:
        logger.add(log_file, level=level, format="{time} - {name} - {level} - {message}", rotation="10 MB")

    for logger_name in intercept:
        mod_logger = logging.getLogger(logger_name)
        mod_logger.handlers = [InterceptHandler()]
        mod_logger.propagate = False

    logger.debug(f"Loguru configured at level {level}")

#
# End of logging_config.py
#######################################################################################################################

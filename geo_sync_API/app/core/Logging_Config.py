# Logging_Config.py
# Description: Loguru sink setup, plus routing of stdlib logging from third-party libraries into loguru.
#
# Imports
import logging
import sys
from typing import Iterable, Optional
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = ("<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
              "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>")

INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "urllib3")


class InterceptHandler(logging.Handler):
    def emit(self, record):
        # Get corresponding Loguru level if it exists
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


def setup_logging(log_level: str = "INFO", intercept: Optional[Iterable[str]] = INTERCEPTED_LOGGERS) -> int:
    """Replaces loguru's default sink with a coloured stderr sink. Returns the new handler id."""
    logger.remove()
    handler_id = logger.add(sys.stderr, level=log_level, format=LOG_FORMAT, colorize=True)

    for logger_name in intercept or ():
        mod_logger = logging.getLogger(logger_name)
        mod_logger.handlers = [InterceptHandler()]
        mod_logger.propagate = False

    logger.debug(f"Loguru logger configured at level {log_level}.")
    return handler_id

#
# End of Logging_Config.py
#######################################################################################################################

"""Logging for juju-bundle.

Debug output goes to a rotating file named by $JUJU_BUNDLE_LOG (unset:
juju-bundle.log, empty: no file), everything from INFO up to stderr.
Records logged through a `DebugMixin` carry their owner's name.
"""

import os
import sys

from loguru import logger

LOG_FILE = os.environ.get("JUJU_BUNDLE_LOG", "juju-bundle.log")
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {extra[owner]}{message}"
)
STDERR_FORMAT = "{time:HH:mm:ss} | <level>{level: <8} | {extra[owner]}{message}</level>"

logger.remove()
logger.configure(extra={"owner": ""})
if LOG_FILE:
    logger.add(
        LOG_FILE, rotation="5 MB", retention=3, level="DEBUG", format=FILE_FORMAT
    )
logger.level("INFO", color="<green><bold>")
logger.add(sys.stderr, colorize=True, level="INFO", format=STDERR_FORMAT)


debug = logger.debug
error = logger.error
info = logger.info
warning = logger.warning
exception = logger.exception


def owned_by(name):
    """A logger whose records are prefixed with [name]."""
    return logger.bind(owner=f"[{name}] ")


class DebugMixin:
    """Log as `self.name`, falling back to the class name."""

    @property
    def _logger(self):
        name = getattr(self, "name", None) or self.__class__.__name__
        return owned_by(name).opt(depth=1)

    def debug(self, msg, *args, **kwargs):
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self._logger.error(msg, *args, **kwargs)

    def exception(self, msg, *args, **kwargs):
        self._logger.exception(msg, *args, **kwargs)

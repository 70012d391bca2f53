"""Pluggable lock lifecycle logging."""

import logging
from typing import Optional, Protocol

from .context import Context


class Logger(Protocol):
    """Four-level logger the lock handles report their lifecycle to.

    ``msg`` is a ``%``-style template formatted with ``args``.
    """

    def debug(self, ctx: Context, msg: str, *args) -> None: ...

    def info(self, ctx: Context, msg: str, *args) -> None: ...

    def warn(self, ctx: Context, msg: str, *args) -> None: ...

    def error(self, ctx: Context, msg: str, *args) -> None: ...


class StandardLogger:
    """Logger backed by the standard ``logging`` module."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("leasehold")

    def debug(self, ctx: Context, msg: str, *args) -> None:
        self.logger.debug(msg, *args)

    def info(self, ctx: Context, msg: str, *args) -> None:
        self.logger.info(msg, *args)

    def warn(self, ctx: Context, msg: str, *args) -> None:
        self.logger.warning(msg, *args)

    def error(self, ctx: Context, msg: str, *args) -> None:
        self.logger.error(msg, *args)


class NoopLogger:
    """Logger that discards everything."""

    def debug(self, ctx: Context, msg: str, *args) -> None:
        pass

    def info(self, ctx: Context, msg: str, *args) -> None:
        pass

    def warn(self, ctx: Context, msg: str, *args) -> None:
        pass

    def error(self, ctx: Context, msg: str, *args) -> None:
        pass

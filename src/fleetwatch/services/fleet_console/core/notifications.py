from __future__ import annotations

import logging
from typing import Protocol


logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Toast sink. The textual app routes these to ``App.notify``."""

    def success(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LogNotifier:
    """Notifier used when no UI is attached."""

    def success(self, message: str) -> None:
        logger.info(message)

    def warning(self, message: str) -> None:
        logger.warning(message)

    def error(self, message: str) -> None:
        logger.error(message)

"""
Bounded log of dispatched commands, rendered most-recent-first.

Entries are resolved by the correlation id handed out at dispatch time, so
two concurrent invocations of the same command never resolve each other's
rows.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, Iterator, List, Optional

from fleetwatch.shared.models.core import Target, target_label


logger = logging.getLogger(__name__)

COMMAND_LOG_CAPACITY = 50


class EntryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class CommandLogEntry:
    correlation_id: str
    command: str
    target: Target
    status: EntryStatus = EntryStatus.PENDING
    message: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def target_label(self) -> str:
        return target_label(self.target)

    @property
    def time_label(self) -> str:
        return self.timestamp.strftime("%H:%M:%S")


class CommandLog:
    def __init__(self, capacity: int = COMMAND_LOG_CAPACITY, *, on_change: Optional[Callable[[], None]] = None):
        self._entries: Deque[CommandLogEntry] = deque(maxlen=capacity)
        self._ids = itertools.count(1)
        self._on_change = on_change

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CommandLogEntry]:
        """Most recent first."""
        return reversed(self._entries)

    def entries(self) -> List[CommandLogEntry]:
        return list(self)

    def next_correlation_id(self) -> str:
        return f"cmd-{next(self._ids)}"

    def append(
        self,
        command: str,
        target: Target,
        status: EntryStatus = EntryStatus.PENDING,
        message: str = "",
        *,
        correlation_id: Optional[str] = None,
    ) -> CommandLogEntry:
        entry = CommandLogEntry(
            correlation_id=correlation_id or self.next_correlation_id(),
            command=command,
            target=target,
            status=status,
            message=message,
        )
        # deque(maxlen) drops the oldest entry regardless of its status.
        self._entries.append(entry)
        self._changed()
        return entry

    def get(self, correlation_id: str) -> Optional[CommandLogEntry]:
        for entry in self._entries:
            if entry.correlation_id == correlation_id:
                return entry
        return None

    def resolve(self, correlation_id: str, ok: bool, message: str = "") -> Optional[CommandLogEntry]:
        entry = self.get(correlation_id)
        if entry is None:
            # Evicted while in flight.
            logger.debug("Command log entry %s no longer present", correlation_id)
            return None
        entry.status = EntryStatus.SUCCESS if ok else EntryStatus.FAILED
        entry.message = message
        self._changed()
        return entry

    def resolve_pending_by_name(self, command: str, ok: bool, message: str = "") -> Optional[CommandLogEntry]:
        """Resolve the newest pending entry for ``command``.

        Ambiguous when the same command is in flight twice; prefer ``resolve``.
        """
        for entry in reversed(self._entries):
            if entry.status == EntryStatus.PENDING and entry.command == command:
                return self.resolve(entry.correlation_id, ok, message)
        return None

    def remove(self, correlation_id: str) -> bool:
        entry = self.get(correlation_id)
        if entry is None:
            return False
        self._entries.remove(entry)
        self._changed()
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

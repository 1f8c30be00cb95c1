"""Append-only container for pipeline history entries."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from uuid import uuid7

from backforge_schemas.conversation import TokenUsage
from backforge_schemas.history import HistoryEntry
from backforge_schemas.primitives import (
    HistoryEntryType,
    JsonValue,
    PhaseName,
    Timestamp,
)


class History:
    """Ordered, append-only sequence of history entries."""

    def __init__(self, entries: Iterable[HistoryEntry] = ()) -> None:
        """Initialize the history.

        Args:
            entries: Entries to seed the history with, oldest first.

        Raises:
            ValueError: If two entries share an identifier.
        """
        self._entries: list[HistoryEntry] = []
        self._ids: set[str] = set()
        for entry in entries:
            self.append(entry)

    def append(self, entry: HistoryEntry) -> None:
        """Append an entry.

        Args:
            entry: Entry to append.

        Raises:
            ValueError: If an entry with the same identifier exists.
        """
        key = str(entry.id)
        if key in self._ids:
            raise ValueError(f"history entry {key} already recorded")
        self._ids.add(key)
        self._entries.append(entry)

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        """Entries, oldest first."""
        return tuple(self._entries)

    @property
    def token_usage(self) -> TokenUsage:
        """Usage summed over every entry."""
        total = TokenUsage()
        for entry in self._entries:
            total = total.add(entry.token_usage)
        return total

    def for_phase(self, phase: PhaseName) -> list[HistoryEntry]:
        """Return the entries recorded for a phase."""
        return [entry for entry in self._entries if entry.phase == phase]

    def latest(self, phase: PhaseName) -> HistoryEntry | None:
        """Return the newest phase entry for a phase."""
        for entry in reversed(self._entries):
            if entry.phase == phase and entry.type == HistoryEntryType.PHASE:
                return entry
        return None

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


def build_history_entry(
    entry_type: HistoryEntryType,
    *,
    created_at: Timestamp,
    completed_at: Timestamp,
    token_usage: TokenUsage | None = None,
    phase: PhaseName | None = None,
    revision: int | None = None,
    summary: str = "",
    data: dict[str, JsonValue] | None = None,
) -> HistoryEntry:
    """Build a history entry with a fresh uuid7 identifier.

    Returns:
        HistoryEntry: New immutable entry.
    """
    return HistoryEntry(
        id=uuid7(),
        type=HistoryEntryType(entry_type),
        created_at=created_at,
        completed_at=completed_at,
        token_usage=token_usage or TokenUsage(),
        phase=None if phase is None else PhaseName(phase),
        revision=revision,
        summary=summary,
        data=data,
    )

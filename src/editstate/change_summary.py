"""
Immutable change summaries.

A ChangeSummary is a point-in-time report of a tracker's pending changes,
used for "unsaved changes" dialogs and save confirmations.

- Frozen dataclasses, data only (no entry or value references)
- Keys are kept as given; to_dict() stringifies them for JSON export
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Tuple
import time

from editstate.change_state import ChangeState


@dataclass(frozen=True)
class ChangeEntry:
    """One pending change."""
    key: Hashable
    state: ChangeState
    modified_properties: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ChangeSummary:
    """Pending changes of one data source, grouped by state."""
    source_name: str
    entries: Tuple[ChangeEntry, ...]
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_tracker(cls, tracker: Any, source_name: str = '') -> 'ChangeSummary':
        """Capture the current changes of a RepositoryChangeTracker."""
        entries = tuple(
            ChangeEntry(
                key=key,
                state=tracker.get_state(key),
                modified_properties=tuple(tracker.get_modified_properties(key)),
            )
            for key in tracker.get_changed_keys()
        )
        return cls(source_name=source_name or tracker.name, entries=entries)

    def _count(self, state: ChangeState) -> int:
        return sum(1 for e in self.entries if e.state is state)

    @property
    def added_count(self) -> int:
        return self._count(ChangeState.ADDED)

    @property
    def modified_count(self) -> int:
        return self._count(ChangeState.MODIFIED)

    @property
    def deleted_count(self) -> int:
        return self._count(ChangeState.DELETED)

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def keys_in(self, state: ChangeState) -> List[Hashable]:
        return [e.key for e in self.entries if e.state is state]

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {
            'source_name': self.source_name,
            'timestamp': self.timestamp,
            'added': self.added_count,
            'modified': self.modified_count,
            'deleted': self.deleted_count,
            'entries': [
                {
                    'key': str(e.key),
                    'state': e.state.value,
                    'modified_properties': list(e.modified_properties),
                }
                for e in self.entries
            ],
        }

    def __str__(self) -> str:
        return f"{self.added_count} added, {self.modified_count} modified, {self.deleted_count} deleted"

"""
RepositoryChangeTracker: the generic baseline-diff engine.

Owns a key -> TrackedEntry map and answers, at any instant, what changed and
from what. Data sources wrap one tracker each; nothing is shared between
trackers.

Notification model:
    on_modified_state_changed(callback) subscribes callback(has_changes: bool).
    It fires only when has_changes flips, never per edit, so an "unsaved
    changes" indicator does not thrash while the user types.
"""
from contextlib import contextmanager
from typing import (
    Any, Callable, Dict, Generator, Generic, Hashable, Iterable, List, Mapping, Optional, TypeVar,
)
import logging

from editstate.accessors import accessors_for
from editstate.change_state import ChangeState
from editstate.cloner import BaselineCloner, default_cloner
from editstate.tracked_entry import TableFor, TrackedEntry

logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
V = TypeVar('V')


class DuplicateKeyError(KeyError):
    """Raised by track_add for a key that is already tracked and not deleted."""

    def __init__(self, key: Any):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Key {self.key!r} is already tracked"


class RepositoryChangeTracker(Generic[K, V]):
    """Per-key change tracking with property-level diffs.

    Untracked keys are tolerated everywhere except track_add: deleting,
    editing or reverting a key the tracker has never seen is a logged no-op.
    """

    def __init__(
        self,
        table_for: Optional[TableFor] = None,
        cloner: Optional[BaselineCloner] = None,
        name: str = '',
    ):
        self.name = name
        self._table_for: TableFor = table_for or accessors_for
        self._cloner = cloner or default_cloner
        self._entries: Dict[K, TrackedEntry[K, V]] = {}
        # Keys in the order they first became changed; values unused
        self._changed: Dict[K, None] = {}
        self._on_modified_state_changed_callbacks: List[Callable[[bool], None]] = []

    # ========== Baseline ==========

    def initialize_baseline(self, source: Mapping[K, V]) -> None:
        """Seed baselines from a read-only snapshot. Idempotent per key."""
        seeded = 0
        for key, value in source.items():
            if key in self._entries:
                continue
            self._entries[key] = self._new_entry(key, value)
            seeded += 1
        logger.debug(f"{self._label()}: seeded {seeded} baselines ({len(self._entries)} tracked)")

    def reset_baseline(self, source: Mapping[K, V]) -> None:
        """Drop every entry and pending change, then reseed from source."""
        with self._notifying():
            self._entries.clear()
            self._changed.clear()
            for key, value in source.items():
                self._entries[key] = self._new_entry(key, value)
        logger.debug(f"{self._label()}: baseline reset ({len(self._entries)} tracked)")

    # ========== Edits ==========

    def track_add(self, key: K, value: V) -> None:
        """Track a new entity as ADDED.

        Re-adding a key that is pending deletion turns the delete into a
        replacement: the entry is diffed against its old baseline.
        """
        entry = self._entries.get(key)
        if entry is not None and entry.state is not ChangeState.DELETED:
            raise DuplicateKeyError(key)

        with self._notifying():
            if entry is None:
                entry = TrackedEntry(key, None, self._table_for, self._cloner, working=value)
                self._entries[key] = entry
            else:
                entry._restore(value)
            self._sync_changed(entry)
        logger.debug(f"{self._label()}: {key!r} -> {entry.state.name}")

    def track_delete(self, key: K) -> None:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"{self._label()}: delete of untracked key {key!r} ignored")
            return
        if entry.state is ChangeState.DELETED:
            return

        with self._notifying():
            if entry.state is ChangeState.ADDED:
                # Never persisted: forget it entirely
                del self._entries[key]
                self._changed.pop(key, None)
                logger.debug(f"{self._label()}: added key {key!r} discarded")
            else:
                entry._mark_deleted()
                self._sync_changed(entry)
                logger.debug(f"{self._label()}: {key!r} -> DELETED")

    def track_property_change(self, key: K, property_name: str, new_value: Any) -> bool:
        """Write one property and return whether it now differs from baseline.

        Raises AccessorError if the tracked type has no such property.
        """
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"{self._label()}: property change on untracked key {key!r} ignored")
            return False
        if entry.state is ChangeState.DELETED:
            logger.debug(f"{self._label()}: property change on deleted key {key!r} ignored")
            return False

        with self._notifying():
            modified = entry._set_property(property_name, new_value)
            self._sync_changed(entry)
        logger.debug(f"{self._label()}: {key!r}.{property_name} modified={modified} state={entry.state.name}")
        return modified

    def track_value_change(self, key: K, value: V) -> bool:
        """Replace the working copy wholesale; return whether the entry now has changes."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"{self._label()}: value change on untracked key {key!r} ignored")
            return False
        if entry.state is ChangeState.DELETED:
            logger.debug(f"{self._label()}: value change on deleted key {key!r} ignored")
            return False

        with self._notifying():
            entry._replace_working(value)
            self._sync_changed(entry)
        logger.debug(f"{self._label()}: {key!r} replaced, state={entry.state.name}")
        return entry.state.is_pending

    def revert_property(self, key: K, property_name: str) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.state in (ChangeState.ADDED, ChangeState.DELETED):
            return False

        with self._notifying():
            reverted = entry._revert_property(property_name)
            self._sync_changed(entry)
        return reverted

    def revert(self, key: Optional[K] = None) -> None:
        """Discard pending changes for one key, or for every key when key is None."""
        if key is None:
            keys = list(self._changed)
        elif key in self._entries:
            keys = [key]
        else:
            logger.debug(f"{self._label()}: revert of untracked key {key!r} ignored")
            return

        with self._notifying():
            for k in keys:
                entry = self._entries[k]
                if entry.state is ChangeState.ADDED:
                    del self._entries[k]
                else:
                    entry._revert()
                self._changed.pop(k, None)
        if keys:
            logger.debug(f"{self._label()}: reverted {len(keys)} key(s)")

    def rebase(self, keys: Optional[Iterable[K]] = None) -> None:
        """Adopt working copies as baselines after a successful save.

        Deleted entries are dropped. With keys given, only those are rebased;
        changes to other keys stay pending.
        """
        targets = list(self._changed) if keys is None else [k for k in keys if k in self._changed]

        with self._notifying():
            for k in targets:
                entry = self._entries[k]
                if entry.state is ChangeState.DELETED:
                    del self._entries[k]
                else:
                    entry._rebase()
                self._changed.pop(k, None)
        logger.debug(f"{self._label()}: rebased {len(targets)} key(s)")

    # ========== Queries ==========

    @property
    def has_changes(self) -> bool:
        return bool(self._changed)

    def get_state(self, key: K) -> Optional[ChangeState]:
        """State of key, or None when the key is not tracked."""
        entry = self._entries.get(key)
        return entry.state if entry is not None else None

    def get_entry(self, key: K) -> Optional[TrackedEntry[K, V]]:
        return self._entries.get(key)

    def get_changed_keys(self) -> List[K]:
        """Added, then modified, then deleted keys; each group in change order."""
        return self.get_added_keys() + self.get_modified_keys() + self.get_deleted_keys()

    def get_added_keys(self) -> List[K]:
        return self._keys_in_state(ChangeState.ADDED)

    def get_modified_keys(self) -> List[K]:
        return self._keys_in_state(ChangeState.MODIFIED)

    def get_deleted_keys(self) -> List[K]:
        return self._keys_in_state(ChangeState.DELETED)

    def is_property_modified(self, key: K, property_name: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_property_modified(property_name)

    def get_modified_properties(self, key: K) -> List[str]:
        entry = self._entries.get(key)
        return entry.get_modified_properties() if entry is not None else []

    def get_property_baseline(self, key: K, property_name: str) -> Any:
        entry = self._entries.get(key)
        return entry.get_property_baseline(property_name) if entry is not None else None

    def get_baseline(self, key: K) -> Optional[V]:
        """Deep copy of the baseline; None for added or untracked keys."""
        entry = self._entries.get(key)
        return entry.baseline if entry is not None else None

    def get_working(self, key: K) -> Optional[V]:
        """Live working copy; None for deleted or untracked keys."""
        entry = self._entries.get(key)
        if entry is None or entry.state is ChangeState.DELETED:
            return None
        return entry.working

    def contains(self, key: K) -> bool:
        return key in self._entries

    def keys(self) -> List[K]:
        """Every tracked key, deleted ones included."""
        return list(self._entries)

    def visible_keys(self, registry_keys: Optional[Iterable[K]] = None) -> List[K]:
        """(registry keys or baseline keys, then added keys) minus deleted keys."""
        if registry_keys is None:
            base = [k for k, e in self._entries.items() if e.has_baseline]
        else:
            base = list(registry_keys)
        seen = set(base)
        result = [k for k in base if self.get_state(k) is not ChangeState.DELETED]
        result.extend(k for k in self.get_added_keys() if k not in seen)
        return result

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ========== Notification ==========

    def on_modified_state_changed(self, callback: Callable[[bool], None]) -> None:
        """Subscribe callback(has_changes) to has_changes transitions."""
        if callback not in self._on_modified_state_changed_callbacks:
            self._on_modified_state_changed_callbacks.append(callback)

    def off_modified_state_changed(self, callback: Callable[[bool], None]) -> None:
        if callback in self._on_modified_state_changed_callbacks:
            self._on_modified_state_changed_callbacks.remove(callback)

    @contextmanager
    def _notifying(self) -> Generator[None, None, None]:
        """Fire modified-state callbacks once if has_changes flips inside the block."""
        had_changes = self.has_changes
        yield
        if self.has_changes != had_changes:
            self._fire_modified_state_changed(self.has_changes)

    def _fire_modified_state_changed(self, has_changes: bool) -> None:
        logger.debug(f"{self._label()}: has_changes -> {has_changes}")
        for callback in list(self._on_modified_state_changed_callbacks):
            try:
                callback(has_changes)
            except Exception as e:
                logger.warning(f"Error in modified_state_changed callback: {e}")

    # ========== Internals ==========

    def _new_entry(self, key: K, value: V) -> TrackedEntry[K, V]:
        return TrackedEntry(key, value, self._table_for, self._cloner)

    def _sync_changed(self, entry: TrackedEntry[K, V]) -> None:
        if entry.state.is_pending:
            self._changed.setdefault(entry.key, None)
        else:
            self._changed.pop(entry.key, None)

    def _keys_in_state(self, state: ChangeState) -> List[K]:
        return [k for k in self._changed if self._entries[k].state is state]

    def _label(self) -> str:
        return self.name or type(self).__name__

"""
Shared plumbing for editable data sources.

Each data source owns exactly one RepositoryChangeTracker and exposes the
read/edit/save surface an editor UI binds to. Subclasses decide how tracked
changes are written to their repository (_save_internal) and how caller keys
map to tracked keys (_resolve_key).
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Hashable, Iterator, List, Optional, Tuple, TypeVar
import logging

from editstate.change_state import ChangeState
from editstate.change_summary import ChangeSummary
from editstate.cloner import BaselineCloner, default_cloner
from editstate.config import get_engine_config
from editstate.tracked_entry import TableFor
from editstate.tracker import RepositoryChangeTracker

logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
D = TypeVar('D')


class EditableDataSourceBase(ABC, Generic[K, D]):
    """Base class: change notification, reads, property edits and the save template."""

    def __init__(
        self,
        name: str = '',
        table_for: Optional[TableFor] = None,
        cloner: Optional[BaselineCloner] = None,
    ):
        self.name = name or type(self).__name__
        self._cloner = cloner or default_cloner
        self._tracker: RepositoryChangeTracker[K, D] = RepositoryChangeTracker(
            table_for=table_for, cloner=self._cloner, name=self.name,
        )
        self._on_modified_state_changed_callbacks: List[Callable[[bool], None]] = []
        self._tracker.on_modified_state_changed(self._forward_modified_state_changed)

    # ========== Subclass hooks ==========

    @abstractmethod
    async def _save_internal(self, keys: List[K]) -> None:
        """Write the given changed keys to the repository and await its save."""

    def _on_save_succeeded(self, keys: List[K]) -> None:
        """Called after the repository save resolves, right before the tracker rebases keys."""

    def _resolve_key(self, key: Any) -> Optional[K]:
        """Map a caller-supplied key to a tracked key (None = not addressable)."""
        return key

    @abstractmethod
    def _baseline_source(self) -> Any:
        """Mapping of persisted key -> value used to seed the tracker."""

    # ========== State ==========

    @property
    def tracker(self) -> RepositoryChangeTracker[K, D]:
        return self._tracker

    @property
    def has_modifications(self) -> bool:
        return self._tracker.has_changes

    @property
    def count(self) -> int:
        """Visible items: baseline plus added, minus deleted."""
        return len(self._tracker.visible_keys())

    def __len__(self) -> int:
        return self.count

    def get_item_state(self, key: Any) -> ChangeState:
        """State of key; untracked keys read as UNCHANGED."""
        resolved = self._resolve_key(key)
        state = self._tracker.get_state(resolved) if resolved is not None else None
        return state if state is not None else ChangeState.UNCHANGED

    def is_property_modified(self, key: Any, property_name: str) -> bool:
        resolved = self._resolve_key(key)
        return resolved is not None and self._tracker.is_property_modified(resolved, property_name)

    def get_modified_properties(self, key: Any) -> List[str]:
        resolved = self._resolve_key(key)
        return self._tracker.get_modified_properties(resolved) if resolved is not None else []

    def get_property_baseline_value(self, key: Any, property_name: str) -> Any:
        resolved = self._resolve_key(key)
        return self._tracker.get_property_baseline(resolved, property_name) if resolved is not None else None

    def get_baseline_value(self, key: Any) -> Optional[D]:
        """Deep copy of the last persisted value (None for added or unknown keys)."""
        resolved = self._resolve_key(key)
        return self._tracker.get_baseline(resolved) if resolved is not None else None

    def get_change_summary(self) -> ChangeSummary:
        return ChangeSummary.from_tracker(self._tracker, self.name)

    # ========== Reads ==========

    def enumerate_items(self) -> Iterator[Tuple[K, D]]:
        """Yield (key, value) for every visible item: baseline order, then added order."""
        for key in self._tracker.visible_keys():
            yield key, self._read(self._tracker.get_working(key))

    def get_item(self, key: Any) -> D:
        """Working copy of a visible item. Raises KeyError otherwise."""
        resolved = self._resolve_key(key)
        if resolved is None or self._tracker.get_working(resolved) is None:
            raise KeyError(key)
        return self._read(self._tracker.get_working(resolved))

    def try_get_item(self, key: Any) -> Optional[D]:
        try:
            return self.get_item(key)
        except KeyError:
            return None

    def contains_key(self, key: Any) -> bool:
        resolved = self._resolve_key(key)
        return resolved is not None and self._tracker.get_working(resolved) is not None

    def __contains__(self, key: object) -> bool:
        return self.contains_key(key)

    def visible_keys(self, registry_keys: Optional[List[K]] = None) -> List[K]:
        """(registry keys ∪ added keys) − deleted keys.

        Pass the repository's key registry to see keys added since load, which
        the registry alone does not list until save.
        """
        return self._tracker.visible_keys(registry_keys)

    # ========== Edits ==========

    def track_property_change(self, key: Any, property_name: str, new_value: Any) -> bool:
        """Set one property on an item's working copy. Returns True if it differs from baseline."""
        resolved = self._resolve_key(key)
        if resolved is None:
            logger.debug(f"{self.name}: property change on unknown key {key!r} ignored")
            return False
        return self._tracker.track_property_change(resolved, property_name, new_value)

    def update_item(self, key: Any, value: D) -> bool:
        """Replace an item's working copy. Returns True if the item now has changes."""
        resolved = self._resolve_key(key)
        if resolved is None:
            return False
        return self._tracker.track_value_change(resolved, value)

    def revert_property(self, key: Any, property_name: str) -> bool:
        resolved = self._resolve_key(key)
        return resolved is not None and self._tracker.revert_property(resolved, property_name)

    def revert(self, key: Any = None) -> None:
        """Discard pending changes for key, or all pending changes."""
        if key is None:
            self._tracker.revert()
            return
        resolved = self._resolve_key(key)
        if resolved is not None:
            self._tracker.revert(resolved)

    def refresh_baseline(self) -> None:
        """Discard all tracking and reseed from the repository's persisted state."""
        self._tracker.reset_baseline(self._baseline_source())

    # ========== Save ==========

    async def save(self) -> None:
        """Persist pending changes; rebase the tracker only if persistence succeeds.

        Keys changed while the save is in flight stay pending.
        """
        keys = self._tracker.get_changed_keys()
        summary = self.get_change_summary()
        try:
            await self._save_internal(keys)
        except BaseException as e:
            logger.warning(f"{self.name}: save failed with {summary} pending: {e!r}")
            raise
        self._on_save_succeeded(keys)
        self._tracker.rebase(keys)
        logger.info(f"{self.name}: saved ({summary})")

    # ========== Notification ==========

    def on_modified_state_changed(self, callback: Callable[[bool], None]) -> None:
        """Subscribe callback(has_modifications); fires only when it flips."""
        if callback not in self._on_modified_state_changed_callbacks:
            self._on_modified_state_changed_callbacks.append(callback)

    def off_modified_state_changed(self, callback: Callable[[bool], None]) -> None:
        if callback in self._on_modified_state_changed_callbacks:
            self._on_modified_state_changed_callbacks.remove(callback)

    def _forward_modified_state_changed(self, has_changes: bool) -> None:
        for callback in list(self._on_modified_state_changed_callbacks):
            try:
                callback(has_changes)
            except Exception as e:
                logger.warning(f"Error in {self.name} modified_state_changed callback: {e}")

    # ========== Internals ==========

    def _read(self, value: Optional[D]) -> Optional[D]:
        """Hand out a value: a deep copy unless copy_on_read is disabled."""
        if value is None or not get_engine_config().copy_on_read:
            return value
        return self._cloner.clone(value)

    def _snapshot(self, key: K) -> D:
        """Independent copy of a working value for handing to a repository."""
        return self._cloner.clone(self._tracker.get_working(key))

"""
TrackedEntry: baseline, working copy and property diff for one key.

Only RepositoryChangeTracker mutates an entry. Every public attribute is a
read-only property; the underscore methods are the tracker's private API.
"""
from types import MappingProxyType
from typing import Any, Callable, Generic, Hashable, List, Mapping, Optional, TypeVar
import logging

from editstate.accessors import AccessorTable
from editstate.change_state import ChangeState
from editstate.cloner import BaselineCloner
from editstate.property_tracker import PropertyDiffTracker

logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
V = TypeVar('V')

# Diff path used when a value type exposes no accessors: the whole value is one property
WHOLE_VALUE = '*'

TableFor = Callable[[Any], AccessorTable]


class _Missing:
    """Value of a property the object does not have (a dict key absent from the baseline)."""

    def __repr__(self) -> str:
        return '<missing>'

    def __copy__(self) -> '_Missing':
        return self

    def __deepcopy__(self, memo: Any) -> '_Missing':
        return self


MISSING = _Missing()


class TrackedEntry(Generic[K, V]):
    """Per-key tracking record.

    State is derived, never stored:
    - DELETED while the delete flag is set
    - ADDED while there is no baseline
    - MODIFIED while any property diverges
    - UNCHANGED otherwise
    """

    def __init__(
        self,
        key: K,
        baseline: Optional[V],
        table_for: TableFor,
        cloner: BaselineCloner,
        working: Optional[V] = None,
    ):
        self._key = key
        self._cloner = cloner
        self._table_for = table_for
        self._baseline: Optional[V] = cloner.clone(baseline) if baseline is not None else None
        # Lazily materialized from the baseline on first access
        self._working: Optional[V] = cloner.clone(working) if working is not None else None
        self._deleted = False
        self._diff = PropertyDiffTracker(cloner)

    # ========== Read-only view ==========

    @property
    def key(self) -> K:
        return self._key

    @property
    def baseline(self) -> Optional[V]:
        """Deep copy of the baseline (None for added entries)."""
        if self._baseline is None:
            return None
        return self._cloner.clone(self._baseline)

    @property
    def working(self) -> Optional[V]:
        """Live working copy. Callers outside the tracker must treat it as read-only."""
        if self._working is None and self._baseline is not None:
            self._working = self._cloner.clone(self._baseline)
        return self._working

    @property
    def modified_properties(self) -> Mapping[str, Any]:
        """Property path -> baseline value, for currently diverging properties only."""
        return MappingProxyType({
            name: None if value is MISSING else value
            for name, value in self._diff.as_mapping().items()
        })

    @property
    def state(self) -> ChangeState:
        if self._deleted:
            return ChangeState.DELETED
        if self._baseline is None:
            return ChangeState.ADDED
        if self._diff:
            return ChangeState.MODIFIED
        return ChangeState.UNCHANGED

    @property
    def has_baseline(self) -> bool:
        return self._baseline is not None

    def is_property_modified(self, name: str) -> bool:
        return self._diff.is_modified(name)

    def get_modified_properties(self) -> List[str]:
        return self._diff.modified_properties()

    def get_property_baseline(self, name: str) -> Any:
        """Baseline value of one property (recorded value if modified, else read from baseline)."""
        if self._diff.is_modified(name):
            value = self._diff.baseline_of(name)
            return None if value is MISSING else value
        if self._baseline is None:
            return None
        if name == WHOLE_VALUE:
            return self.baseline
        table = self._table_for(self._baseline)
        return self._cloner.clone(table.get(name).getter(self._baseline))

    def __repr__(self) -> str:
        return f"TrackedEntry(key={self._key!r}, state={self.state.name}, modified={self._diff.modified_properties()})"

    # ========== Tracker-private mutation ==========

    def _set_property(self, name: str, new_value: Any) -> bool:
        """Write one property into the working copy and update the diff."""
        if self._deleted:
            return False

        working = self.working
        table = self._table_for(working)
        accessor = table.get(name)

        if self._baseline is None:
            accessor.setter(working, self._cloner.clone(new_value))
            return True

        if self._diff.is_modified(name):
            baseline_value = self._diff.baseline_of(name)
        else:
            baseline_value = self._value_at(self._table_for(self._baseline), self._baseline, name)

        accessor.setter(working, self._cloner.clone(new_value))
        self._diff.track(name, baseline_value, new_value)
        self._reconcile(table)
        return self._diff.is_modified(name)

    def _replace_working(self, value: V) -> bool:
        """Swap the whole working copy and diff every leaf property against baseline."""
        if self._deleted:
            return False

        self._working = self._cloner.clone(value)
        if self._baseline is None:
            return True

        self._diff.clear()
        working_table = self._table_for(self._working)
        baseline_table = self._table_for(self._baseline)
        paths = working_table.leaf_paths()
        paths.extend(path for path in baseline_table.leaf_paths() if path not in working_table)

        for path in paths:
            self._diff.track(
                path,
                self._value_at(baseline_table, self._baseline, path),
                self._value_at(working_table, self._working, path),
            )

        # State must never read UNCHANGED while the values differ
        if not self._diff and not self._cloner.equals(self._working, self._baseline):
            self._diff.track(WHOLE_VALUE, self._baseline, self._working)
        return bool(self._diff)

    def _revert_property(self, name: str) -> bool:
        if not self._diff.is_modified(name):
            return False
        if name == WHOLE_VALUE:
            self._working = None
            self._diff.clear()
            return True

        working = self.working
        table = self._table_for(working)
        baseline_value = self._diff.baseline_of(name)
        if baseline_value is MISSING and isinstance(working, dict):
            working.pop(name, None)
        else:
            table.get(name).setter(working, None if baseline_value is MISSING else baseline_value)
        self._diff.retract(name)
        self._reconcile(table)
        return True

    def _mark_deleted(self) -> None:
        self._deleted = True
        self._diff.clear()
        self._working = None

    def _restore(self, value: V) -> bool:
        """Un-delete with a replacement value, diffed against the old baseline."""
        self._deleted = False
        return self._replace_working(value)

    def _revert(self) -> None:
        self._deleted = False
        self._diff.clear()
        self._working = None

    def _rebase(self) -> None:
        """Adopt the working copy as the new baseline."""
        self._baseline = self._cloner.clone(self.working)
        self._diff.clear()

    def _reconcile(self, table: AccessorTable) -> None:
        """Drop recorded properties whose working value matches baseline again.

        Container and leaf paths overlap ("stats" and "stats.attack"), so an
        edit to one can settle the other.
        """
        working = self._working

        def still_diverges(name: str, baseline_value: Any) -> bool:
            if name == WHOLE_VALUE:
                return not self._cloner.equals(working, baseline_value)
            return not self._cloner.equals(self._value_at(table, working, name), baseline_value)

        self._diff.retain_if(still_diverges)

    @staticmethod
    def _value_at(table: AccessorTable, obj: Any, path: str) -> Any:
        if path == WHOLE_VALUE:
            return obj
        if path not in table:
            return MISSING
        return table.get(path).getter(obj)

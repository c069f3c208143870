"""
Editable view over a keyed table repository.
"""
from typing import Any, Callable, Generic, Hashable, List, Mapping, Optional, TypeVar
import logging

from editstate.cloner import BaselineCloner
from editstate.data_source_base import EditableDataSourceBase
from editstate.repositories import TableRepository
from editstate.tracked_entry import TableFor

logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
D = TypeVar('D')


def _default_key_of(item: Any) -> Any:
    return getattr(item, 'id', None)


class EditableKeyValueDataSource(EditableDataSourceBase[K, D], Generic[K, D]):
    """Tracks edits to a table of rows before they reach the repository.

    Example:
        source = EditableKeyValueDataSource(repo)
        source.track_property_change("1", "name", "A2")
        source.add("3", Row(id="3", name="C"))
        await source.save()
    """

    def __init__(
        self,
        repository: TableRepository[K, D],
        key_of: Optional[Callable[[D], K]] = None,
        name: str = '',
        table_for: Optional[TableFor] = None,
        cloner: Optional[BaselineCloner] = None,
    ):
        super().__init__(name=name, table_for=table_for, cloner=cloner)
        self._repository = repository
        self._key_of = key_of or _default_key_of
        self._tracker.initialize_baseline(self._baseline_source())

    @property
    def repository(self) -> TableRepository[K, D]:
        return self._repository

    def _baseline_source(self) -> Mapping[K, D]:
        return self._repository.loaded_items()

    def get_item_key(self, item: D) -> Optional[K]:
        return self._key_of(item)

    def add(self, key: K, value: D) -> None:
        """Track a new row. Raises DuplicateKeyError if key is already present."""
        self._tracker.track_add(key, value)

    def add_item(self, value: D) -> K:
        """Track a new row under the key extracted from it."""
        key = self._key_of(value)
        if key is None:
            raise ValueError(f"Cannot determine key of {value!r}")
        self.add(key, value)
        return key

    def delete(self, key: K) -> None:
        self._tracker.track_delete(key)

    def registry_visible_keys(self) -> List[K]:
        """Visible keys computed from the repository's key registry."""
        return self.visible_keys(self._repository.keys())

    async def _save_internal(self, keys: List[K]) -> None:
        tracker = self._tracker
        selected = set(keys)
        for key in tracker.get_added_keys():
            if key in selected:
                self._repository.add(key, self._snapshot(key))
        for key in tracker.get_modified_keys():
            if key in selected:
                self._repository.update(key, self._snapshot(key))
        for key in tracker.get_deleted_keys():
            if key in selected:
                self._repository.remove(key)
        await self._repository.save()

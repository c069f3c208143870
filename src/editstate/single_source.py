"""
Editable view over a single-record repository (e.g. a game config object).

The record is tracked under one synthetic key. There is nothing to add or
delete, only fields to edit.
"""
from typing import Any, Dict, Generic, List, Optional, TypeVar
import logging

from editstate.cloner import BaselineCloner
from editstate.config import get_engine_config
from editstate.data_source_base import EditableDataSourceBase
from editstate.repositories import SingleRepository
from editstate.tracked_entry import TableFor

logger = logging.getLogger(__name__)

D = TypeVar('D')


class UnsupportedOperationError(TypeError):
    """Raised for add/delete on a single-record data source."""


class EditableSingleDataSource(EditableDataSourceBase[str, D], Generic[D]):
    """Single-record data source."""

    def __init__(
        self,
        repository: SingleRepository[D],
        name: str = '',
        table_for: Optional[TableFor] = None,
        cloner: Optional[BaselineCloner] = None,
    ):
        super().__init__(name=name, table_for=table_for, cloner=cloner)
        self._repository = repository
        self._single_key = get_engine_config().single_key
        self._tracker.initialize_baseline(self._baseline_source())

    @property
    def single_key(self) -> str:
        return self._single_key

    @property
    def repository(self) -> SingleRepository[D]:
        return self._repository

    def _baseline_source(self) -> Dict[str, D]:
        current = self._repository.current
        return {self._single_key: current} if current is not None else {}

    def _resolve_key(self, key: Any) -> Optional[str]:
        """The single key and its legacy spellings; None (the usual default) too."""
        if key is None or key == self._single_key or key in get_engine_config().legacy_single_keys:
            return self._single_key
        logger.debug(f"{self.name}: unknown key {key!r}")
        return None

    def get_current_data(self) -> Optional[D]:
        """The record's working copy, or None when the repository holds nothing."""
        return self.try_get_item(self._single_key)

    def get_item_key(self, item: Any) -> str:
        return self._single_key

    def set_property(self, property_name: str, new_value: Any) -> bool:
        """Shorthand for track_property_change on the single record."""
        return self.track_property_change(self._single_key, property_name, new_value)

    def revert(self, key: Any = None) -> None:
        self._tracker.revert()

    def add(self, key: Any, value: D) -> None:
        raise UnsupportedOperationError(f"{self.name}: single-record sources do not support add")

    def delete(self, key: Any) -> None:
        raise UnsupportedOperationError(f"{self.name}: single-record sources do not support delete")

    async def _save_internal(self, keys: List[str]) -> None:
        if self._single_key in keys:
            self._repository.set(self._snapshot(self._single_key))
        await self._repository.save()

"""
Editable view over an asset repository.

Assets are keyed by AssetId, never by path, so an asset renamed or moved on
disk keeps its tracked state. Property names address the payload directly
("name", "stats.attack"), metadata under a "metadata." prefix
("metadata.display_name"), and the payload location as "file_path".
"""
from dataclasses import fields
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar
import logging

from editstate.accessors import AccessorTable, PropertyAccessor, accessors_for, get_accessor_table
from editstate.assets import Asset, AssetId, AssetMetadata, AssetSummary, utcnow
from editstate.cloner import BaselineCloner
from editstate.data_source_base import EditableDataSourceBase
from editstate.repositories import AssetRepository

logger = logging.getLogger(__name__)

T = TypeVar('T')

METADATA_PREFIX = 'metadata.'

_FILE_PATH_ACCESSOR = PropertyAccessor(
    path='file_path',
    getter=lambda asset: asset.file_path,
    setter=lambda asset, value: setattr(asset, 'file_path', value),
)


# Payload type -> (payload table the wrapper was built from, Asset wrapper table)
_asset_tables: Dict[type, Tuple[AccessorTable, AccessorTable]] = {}


def asset_accessors(asset: Asset) -> AccessorTable:
    """Accessor table for an Asset: payload properties, file_path, then metadata.* properties.

    metadata.guid is not exposed; an asset's identity never changes. Wrapper
    tables are cached per payload type and rebuilt if the payload table is
    (after register_accessors or clear_accessor_cache).
    """
    data_table = accessors_for(asset.data)
    if isinstance(asset.data, dict):
        return _wrap_asset_table(data_table)

    cached = _asset_tables.get(type(asset.data))
    if cached is None or cached[0] is not data_table:
        cached = (data_table, _wrap_asset_table(data_table))
        _asset_tables[type(asset.data)] = cached
    return cached[1]


def _wrap_asset_table(data_table: AccessorTable) -> AccessorTable:
    file_table = AccessorTable(Asset, {'file_path': _FILE_PATH_ACCESSOR})
    metadata_table = (
        get_accessor_table(AssetMetadata)
        .without('guid')
        .through(lambda a: a.metadata, METADATA_PREFIX)
    )
    return data_table.through(lambda a: a.data).merged(file_table).merged(metadata_table)


class EditableAssetDataSource(EditableDataSourceBase[AssetId, Asset[T]], Generic[T]):
    """Tracks edits to file-backed assets.

    Call ``await initialize()`` once the repository is ready; it loads every
    listed asset and seeds the baselines.
    """

    def __init__(
        self,
        repository: AssetRepository[T],
        name: str = '',
        cloner: Optional[BaselineCloner] = None,
    ):
        super().__init__(name=name, table_for=asset_accessors, cloner=cloner)
        self._repository = repository
        self._initialized = False
        self._stamped: Dict[AssetId, Dict[str, Any]] = {}

    @property
    def repository(self) -> AssetRepository[T]:
        return self._repository

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Load every asset listed in the repository, then seed baselines."""
        for summary in self._repository.summaries():
            await self._repository.get(summary.id)
        self._tracker.reset_baseline(self._baseline_source())
        self._initialized = True
        logger.debug(f"{self.name}: initialized with {len(self._tracker)} assets")

    def _baseline_source(self) -> Mapping[AssetId, Asset[T]]:
        return self._repository.loaded_assets()

    def _resolve_key(self, key: Any) -> Optional[AssetId]:
        if isinstance(key, AssetId):
            return key
        if isinstance(key, str):
            return AssetId.try_parse(key)
        return None

    # ========== Queries ==========

    def get_item_key(self, item: Any) -> Optional[AssetId]:
        if isinstance(item, Asset):
            return item.id
        if isinstance(item, AssetSummary):
            return item.id
        return None

    def get_data_for_editing(self, asset_id: AssetId) -> T:
        """Copy of an asset's payload."""
        return self.get_item(asset_id).data

    def get_summaries(self) -> List[AssetSummary]:
        """Summaries of visible assets: persisted ones (minus deleted), then added ones."""
        deleted = set(self._tracker.get_deleted_keys())
        result = [s for s in self._repository.summaries() if s.id not in deleted]
        listed = {s.id for s in result}
        for asset_id in self._tracker.get_added_keys():
            if asset_id not in listed:
                result.append(AssetSummary.from_asset(self._tracker.get_working(asset_id)))
        return result

    def get_item_by_path(self, file_path: str) -> Optional[Asset[T]]:
        """Visible asset at file_path, counting pending adds and unsaved moves."""
        tracker = self._tracker
        moved = [k for k in tracker.get_modified_keys() if tracker.is_property_modified(k, 'file_path')]
        for asset_id in tracker.get_added_keys() + moved:
            working = tracker.get_working(asset_id)
            if working.file_path == file_path:
                return self._read(working)

        summary = self._repository.get_summary_by_path(file_path)
        if summary is None or summary.id in moved:
            return None
        return self.try_get_item(summary.id)

    # ========== Edits ==========

    def add(self, asset_id: AssetId, asset: Asset[T]) -> None:
        """Track an existing Asset object as added. Raises DuplicateKeyError if present."""
        if asset.id != asset_id:
            raise ValueError(f"Asset id {asset.id} does not match key {asset_id}")
        self._tracker.track_add(asset_id, asset)

    def add_new(self, data: T, file_path: str, metadata: Optional[AssetMetadata] = None) -> Asset[T]:
        """Create an asset with fresh identity and track it as added."""
        asset = Asset.create(data, file_path, metadata)
        self.add(asset.id, asset)
        logger.debug(f"{self.name}: new asset {asset.id} at {file_path}")
        return self._read(self._tracker.get_working(asset.id))

    def delete(self, asset_id: AssetId) -> None:
        self._tracker.track_delete(asset_id)

    def update_metadata(self, asset_id: AssetId, action: Callable[[AssetMetadata], None]) -> bool:
        """Apply action to a copy of the asset's metadata and track every field it changed.

        Returns True if the asset has pending changes afterwards.
        """
        working = self._tracker.get_working(asset_id)
        if working is None:
            logger.debug(f"{self.name}: metadata update on unknown asset {asset_id} ignored")
            return False

        current = working.metadata
        updated = self._cloner.clone(current)
        action(updated)
        if updated.guid != current.guid:
            raise ValueError("Asset identity (metadata.guid) cannot be changed")

        for f in fields(AssetMetadata):
            new_value = getattr(updated, f.name)
            if not self._cloner.equals(new_value, getattr(current, f.name)):
                self._tracker.track_property_change(asset_id, f'{METADATA_PREFIX}{f.name}', new_value)
        return self.get_item_state(asset_id).is_pending

    # ========== Save ==========

    async def _save_internal(self, keys: List[AssetId]) -> None:
        tracker = self._tracker
        selected = set(keys)
        now = utcnow()
        # Values the repository receives that the tracker adopts only once the save succeeds
        self._stamped = {}

        for asset_id in tracker.get_added_keys():
            if asset_id in selected:
                self._repository.add(self._stamped_snapshot(asset_id, now))

        for asset_id in tracker.get_modified_keys():
            if asset_id in selected:
                self._repository.update(asset_id, self._stamped_snapshot(asset_id, now, follow_moves=True))

        for asset_id in tracker.get_deleted_keys():
            if asset_id in selected:
                self._repository.remove(asset_id)

        await self._repository.save()

    def _on_save_succeeded(self, keys: List[AssetId]) -> None:
        stamped, self._stamped = self._stamped, {}
        for asset_id, values in stamped.items():
            for property_name, value in values.items():
                self._tracker.track_property_change(asset_id, property_name, value)

    def _stamped_snapshot(self, asset_id: AssetId, now: datetime, follow_moves: bool = False) -> Asset[T]:
        """Copy of the working asset as it is written: modified_at stamped, external moves followed."""
        asset = self._snapshot(asset_id)
        values = {f'{METADATA_PREFIX}modified_at': now}
        asset.metadata.modified_at = now

        if follow_moves and not self._tracker.is_property_modified(asset_id, 'file_path'):
            summary = self._repository.get_summary(asset_id)
            if summary is not None and summary.file_path != asset.file_path:
                logger.debug(f"{self.name}: asset {asset_id} moved to {summary.file_path}")
                asset.file_path = summary.file_path
                values['file_path'] = summary.file_path

        self._stamped[asset_id] = values
        return asset

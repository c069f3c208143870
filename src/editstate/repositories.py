"""
Persistent repository interfaces and in-memory reference implementations.

Data sources translate tracked changes into calls against these interfaces;
storage itself (files, codecs, databases) lives behind them.

The in-memory repositories stage add/update/remove calls and apply them only
when save() succeeds. A failing save leaves committed contents untouched and
discards the staged operations, so the caller can re-stage and retry. Storage
backends override the async ``_commit`` hook.
"""
from types import MappingProxyType
from typing import (
    Any, Dict, Generic, Hashable, List, Mapping, Optional, Protocol, Tuple, TypeVar, runtime_checkable,
)
import asyncio
import copy
import logging

from editstate.assets import Asset, AssetId, AssetMetadata, AssetSummary
from editstate.config import get_engine_config

logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
D = TypeVar('D')
T = TypeVar('T')

# Staged operation: (op, key, value)
StagedOp = Tuple[str, Any, Any]


# ========== Interfaces ==========

@runtime_checkable
class TableRepository(Protocol[K, D]):
    """Keyed table persistence."""

    def loaded_items(self) -> Mapping[K, D]:
        """Read-only snapshot of persisted items, used as the tracking baseline."""
        ...

    def keys(self) -> List[K]:
        ...

    def add(self, key: K, data: D) -> None:
        ...

    def remove(self, key: K) -> bool:
        ...

    def update(self, key: K, data: D) -> None:
        ...

    async def save(self) -> None:
        ...


@runtime_checkable
class SingleRepository(Protocol[D]):
    """Single-record persistence."""

    @property
    def current(self) -> Optional[D]:
        ...

    def set(self, data: D) -> None:
        ...

    async def save(self) -> None:
        ...


@runtime_checkable
class AssetRepository(Protocol[T]):
    """File-identity persistence with lazy payload loading and a path index."""

    def summaries(self) -> List[AssetSummary]:
        ...

    def get_summary(self, asset_id: AssetId) -> Optional[AssetSummary]:
        ...

    def get_summary_by_path(self, file_path: str) -> Optional[AssetSummary]:
        ...

    async def get(self, asset_id: AssetId) -> Optional[Asset[T]]:
        ...

    def loaded_assets(self) -> Mapping[AssetId, Asset[T]]:
        ...

    def add(self, asset: Asset[T]) -> None:
        ...

    def update(self, asset_id: AssetId, asset: Asset[T]) -> None:
        ...

    def remove(self, asset_id: AssetId) -> bool:
        ...

    async def save(self) -> None:
        ...


# ========== In-memory implementations ==========

class InMemoryTableRepository(Generic[K, D]):
    """Dict-backed table repository."""

    def __init__(self, items: Optional[Mapping[K, D]] = None):
        self._items: Dict[K, D] = dict(items or {})
        self._pending: List[StagedOp] = []
        self.save_count = 0

    def loaded_items(self) -> Mapping[K, D]:
        return MappingProxyType(self._items)

    def keys(self) -> List[K]:
        return list(self._items)

    def get(self, key: K) -> Optional[D]:
        return self._items.get(key)

    @property
    def pending_operations(self) -> List[StagedOp]:
        return list(self._pending)

    def add(self, key: K, data: D) -> None:
        self._pending.append(('add', key, data))

    def remove(self, key: K) -> bool:
        exists = key in self._items or any(op == 'add' and k == key for op, k, _ in self._pending)
        self._pending.append(('remove', key, None))
        return exists

    def update(self, key: K, data: D) -> None:
        self._pending.append(('update', key, data))

    async def save(self) -> None:
        pending, self._pending = self._pending, []
        staged = dict(self._items)
        for op, key, data in pending:
            if op == 'remove':
                staged.pop(key, None)
            else:
                staged[key] = data
        await self._commit(staged, pending)
        self._items = staged
        self.save_count += 1
        logger.debug(f"{type(self).__name__}: committed {len(pending)} operation(s)")

    async def _commit(self, items: Dict[K, D], operations: List[StagedOp]) -> None:
        """Persist the new contents. Raise to reject the save."""
        await asyncio.sleep(0)


class InMemorySingleRepository(Generic[D]):
    """Holds one committed value."""

    def __init__(self, current: Optional[D] = None):
        self._current = current
        self._staged: Optional[D] = None
        self._has_staged = False
        self.save_count = 0

    @property
    def current(self) -> Optional[D]:
        return self._current

    def set(self, data: D) -> None:
        self._staged = data
        self._has_staged = True

    async def save(self) -> None:
        staged, has_staged = self._staged, self._has_staged
        self._staged, self._has_staged = None, False
        await self._commit(staged if has_staged else self._current)
        if has_staged:
            self._current = staged
        self.save_count += 1

    async def _commit(self, data: Optional[D]) -> None:
        await asyncio.sleep(0)


class InMemoryAssetRepository(Generic[T]):
    """Asset repository over an in-memory file tree.

    Each asset occupies two "files": the payload at ``file_path`` and its
    metadata dict at ``file_path + metadata_extension``. Identity is read from
    the metadata file, so moving both files keeps the asset's id.
    """

    def __init__(self):
        self._payload_files: Dict[str, Any] = {}
        self._metadata_files: Dict[str, Dict[str, Any]] = {}
        self._paths: Dict[AssetId, str] = {}
        self._loaded: Dict[AssetId, Asset[T]] = {}
        self._pending: List[StagedOp] = []
        self.load_count = 0
        self.save_count = 0

    @staticmethod
    def metadata_path(file_path: str) -> str:
        return f"{file_path}{get_engine_config().metadata_extension}"

    # ----- Files -----

    def seed(self, data: T, file_path: str, metadata: Optional[AssetMetadata] = None) -> AssetId:
        """Write an asset straight to storage, bypassing staging."""
        asset = Asset.create(data, file_path, metadata)
        self._write_files(self._payload_files, self._metadata_files, self._paths, asset)
        return asset.id

    def file_paths(self) -> List[str]:
        return sorted(self._payload_files)

    def read_payload(self, file_path: str) -> Any:
        return copy.deepcopy(self._payload_files[file_path])

    def read_metadata(self, file_path: str) -> Optional[AssetMetadata]:
        raw = self._metadata_files.get(self.metadata_path(file_path))
        return AssetMetadata.from_dict(raw) if raw is not None else None

    def has_file(self, file_path: str) -> bool:
        return file_path in self._payload_files

    def rename(self, asset_id: AssetId, new_path: str) -> None:
        """Move an asset's payload and metadata files (an external rename)."""
        old_path = self._paths[asset_id]
        self._payload_files[new_path] = self._payload_files.pop(old_path)
        self._metadata_files[self.metadata_path(new_path)] = self._metadata_files.pop(self.metadata_path(old_path))
        self._paths[asset_id] = new_path
        loaded = self._loaded.get(asset_id)
        if loaded is not None:
            loaded.file_path = new_path
        logger.debug(f"Asset {asset_id} moved: {old_path} -> {new_path}")

    # ----- Queries -----

    def summaries(self) -> List[AssetSummary]:
        return [self._summary_at(path) for path in sorted(self._paths.values())]

    def get_summary(self, asset_id: AssetId) -> Optional[AssetSummary]:
        path = self._paths.get(asset_id)
        return self._summary_at(path) if path is not None else None

    def get_summary_by_path(self, file_path: str) -> Optional[AssetSummary]:
        if file_path not in self._payload_files:
            return None
        return self._summary_at(file_path)

    async def get(self, asset_id: AssetId) -> Optional[Asset[T]]:
        """Load an asset's payload on first request; cached afterwards."""
        asset = self._loaded.get(asset_id)
        if asset is not None:
            return asset
        path = self._paths.get(asset_id)
        if path is None:
            return None
        await asyncio.sleep(0)
        metadata = self.read_metadata(path)
        asset = Asset(id=asset_id, metadata=metadata, data=self.read_payload(path), file_path=path)
        self._loaded[asset_id] = asset
        self.load_count += 1
        return asset

    def loaded_assets(self) -> Mapping[AssetId, Asset[T]]:
        return MappingProxyType(self._loaded)

    # ----- Staged writes -----

    @property
    def pending_operations(self) -> List[StagedOp]:
        return list(self._pending)

    def add(self, asset: Asset[T]) -> None:
        self._pending.append(('add', asset.id, asset))

    def update(self, asset_id: AssetId, asset: Asset[T]) -> None:
        self._pending.append(('update', asset_id, asset))

    def remove(self, asset_id: AssetId) -> bool:
        self._pending.append(('remove', asset_id, None))
        return asset_id in self._paths

    async def save(self) -> None:
        pending, self._pending = self._pending, []
        payloads = dict(self._payload_files)
        metadata_files = dict(self._metadata_files)
        paths = dict(self._paths)
        loaded = dict(self._loaded)

        for op, asset_id, asset in pending:
            old_path = paths.get(asset_id)
            if old_path is not None and (op == 'remove' or old_path != asset.file_path):
                payloads.pop(old_path, None)
                metadata_files.pop(self.metadata_path(old_path), None)
                paths.pop(asset_id, None)
            if op == 'remove':
                loaded.pop(asset_id, None)
                continue
            self._write_files(payloads, metadata_files, paths, asset)
            loaded[asset_id] = asset

        await self._commit(payloads, metadata_files, pending)
        self._payload_files = payloads
        self._metadata_files = metadata_files
        self._paths = paths
        self._loaded = loaded
        self.save_count += 1
        logger.debug(f"{type(self).__name__}: committed {len(pending)} operation(s)")

    async def _commit(
        self,
        payload_files: Dict[str, Any],
        metadata_files: Dict[str, Dict[str, Any]],
        operations: List[StagedOp],
    ) -> None:
        await asyncio.sleep(0)

    # ----- Internals -----

    def _summary_at(self, file_path: str) -> AssetSummary:
        metadata = self.read_metadata(file_path)
        if metadata is None:
            raise KeyError(f"Missing metadata file for {file_path}")
        return AssetSummary.from_metadata(metadata, file_path)

    def _write_files(
        self,
        payloads: Dict[str, Any],
        metadata_files: Dict[str, Dict[str, Any]],
        paths: Dict[AssetId, str],
        asset: Asset[T],
    ) -> None:
        payloads[asset.file_path] = copy.deepcopy(asset.data)
        metadata_files[self.metadata_path(asset.file_path)] = asset.metadata.to_dict()
        paths[asset.id] = asset.file_path

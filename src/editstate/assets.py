"""
Asset identity and metadata types.

An asset is a file-backed record whose identity (AssetId) lives in a
side-channel metadata file next to the payload, so renaming or moving the
payload never changes which asset it is.
"""
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any, Dict, Generic, List, Optional, TypeVar
import copy
import uuid

T = TypeVar('T')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssetId:
    """Stable asset identifier backed by a UUID, rendered as 32 hex digits."""

    __slots__ = ('_value',)

    def __init__(self, value: uuid.UUID):
        object.__setattr__(self, '_value', value)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("AssetId is immutable")

    @classmethod
    def new(cls) -> 'AssetId':
        return cls(uuid.uuid4())

    @classmethod
    def empty(cls) -> 'AssetId':
        return cls(uuid.UUID(int=0))

    @classmethod
    def parse(cls, text: Optional[str]) -> 'AssetId':
        """Parse a GUID string (with or without dashes); invalid text yields the empty id."""
        parsed = cls.try_parse(text)
        return parsed if parsed is not None else cls.empty()

    @classmethod
    def try_parse(cls, text: Optional[str]) -> Optional['AssetId']:
        if not text:
            return None
        try:
            return cls(uuid.UUID(text))
        except ValueError:
            return None

    @property
    def value(self) -> uuid.UUID:
        return self._value

    @property
    def is_valid(self) -> bool:
        return self._value.int != 0

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AssetId) and self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        return self._value.hex

    def __repr__(self) -> str:
        return f"AssetId('{self._value.hex}')"

    # Immutable: copies are the same object
    def __copy__(self) -> 'AssetId':
        return self

    def __deepcopy__(self, memo: Dict) -> 'AssetId':
        return self


@dataclass
class AssetMetadata:
    """Contents of the companion metadata file of an asset."""
    guid: AssetId = field(default_factory=AssetId.empty)
    display_name: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    category: Optional[str] = None
    description: Optional[str] = None
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    modified_at: datetime = field(default_factory=utcnow)
    content_type: Optional[str] = None
    size: int = 0
    created_by: Optional[str] = None
    modified_by: Optional[str] = None
    custom_properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create_new(cls) -> 'AssetMetadata':
        """Metadata with a freshly allocated guid."""
        return cls.create(AssetId.new())

    @classmethod
    def create(cls, guid: AssetId) -> 'AssetMetadata':
        now = utcnow()
        return cls(guid=guid, created_at=now, modified_at=now)

    def touch(self) -> None:
        self.modified_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Export to JSON-serializable dict (the metadata file contents)."""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, AssetId):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            else:
                value = copy.deepcopy(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssetMetadata':
        """Import from dict; unknown keys are ignored, missing ones take defaults."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: copy.deepcopy(v) for k, v in data.items() if k in known}
        if 'guid' in kwargs:
            kwargs['guid'] = AssetId.parse(kwargs['guid'])
        for stamp in ('created_at', 'modified_at'):
            if isinstance(kwargs.get(stamp), str):
                kwargs[stamp] = datetime.fromisoformat(kwargs[stamp])
        return cls(**kwargs)


@dataclass
class Asset(Generic[T]):
    """Payload plus identity. ``id`` never changes once assigned."""
    id: AssetId
    metadata: AssetMetadata
    data: T
    file_path: str
    locale_root_override: Optional[str] = None

    @classmethod
    def create(cls, data: T, file_path: str, metadata: Optional[AssetMetadata] = None) -> 'Asset[T]':
        """New asset; allocates fresh metadata unless given."""
        if metadata is None:
            metadata = AssetMetadata.create_new()
        return cls(id=metadata.guid, metadata=metadata, data=data, file_path=file_path)

    @property
    def locale_root_id(self) -> str:
        """Root for locale keys: file stem, falling back to the id."""
        if self.locale_root_override:
            return self.locale_root_override
        if self.file_path:
            return PurePath(self.file_path).stem
        return str(self.id)

    def __clone__(self) -> 'Asset[T]':
        return Asset(
            id=self.id,
            metadata=copy.deepcopy(self.metadata),
            data=copy.deepcopy(self.data),
            file_path=self.file_path,
            locale_root_override=self.locale_root_override,
        )


@dataclass(frozen=True)
class AssetSummary:
    """Metadata-only view of an asset, available without loading the payload."""
    id: AssetId
    file_path: str
    metadata: Optional[AssetMetadata] = None

    @classmethod
    def from_metadata(cls, metadata: AssetMetadata, file_path: str) -> 'AssetSummary':
        return cls(id=metadata.guid, file_path=file_path, metadata=copy.deepcopy(metadata))

    @classmethod
    def from_asset(cls, asset: Asset) -> 'AssetSummary':
        return cls.from_metadata(asset.metadata, asset.file_path)

    @property
    def name(self) -> str:
        return PurePath(self.file_path).stem

    @property
    def display_name(self) -> str:
        if self.metadata is not None and self.metadata.display_name:
            return self.metadata.display_name
        return self.name

    @property
    def category(self) -> Optional[str]:
        return self.metadata.category if self.metadata is not None else None

    @property
    def tags(self) -> List[str]:
        return list(self.metadata.tags) if self.metadata is not None else []

    @property
    def last_modified(self) -> Optional[datetime]:
        return self.metadata.modified_at if self.metadata is not None else None

    @property
    def file_size(self) -> Optional[int]:
        return self.metadata.size if self.metadata is not None else None

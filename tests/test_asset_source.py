"""Tests for EditableAssetDataSource: identity, lazy loading, metadata and file fan-out."""
import pytest
import pytest_asyncio

from editstate import (
    AccessorError,
    AssetId,
    ChangeState,
    EditableAssetDataSource,
    InMemoryAssetRepository,
)
from editstate.asset_source import asset_accessors

from conftest import FailingAssetRepository, Sprite


@pytest_asyncio.fixture
async def source(asset_repo):
    source = EditableAssetDataSource(asset_repo, name="sprites")
    await source.initialize()
    return source


def hero_id(repo):
    return repo.get_summary_by_path("sprites/hero.json").id


# ========== Loading ==========

def test_summaries_do_not_load_payloads(asset_repo):
    summaries = asset_repo.summaries()

    assert [s.name for s in summaries] == ["hero", "slime"]
    assert all(s.id.is_valid for s in summaries)
    assert asset_repo.load_count == 0


@pytest.mark.asyncio
async def test_initialize_loads_every_asset(asset_repo):
    source = EditableAssetDataSource(asset_repo)
    assert source.count == 0

    await source.initialize()

    assert source.is_initialized
    assert asset_repo.load_count == 2
    assert source.count == 2
    assert source.get_item(hero_id(asset_repo)).data == Sprite("hero")


@pytest.mark.asyncio
async def test_loaded_assets_are_cached(asset_repo):
    asset_id = hero_id(asset_repo)
    first = await asset_repo.get(asset_id)
    second = await asset_repo.get(asset_id)

    assert first is second
    assert asset_repo.load_count == 1
    assert await asset_repo.get(AssetId.new()) is None


# ========== Identity ==========

@pytest.mark.asyncio
async def test_identity_survives_rename(source, asset_repo):
    asset_id = hero_id(asset_repo)
    asset_repo.rename(asset_id, "sprites/characters/hero.json")

    found = source.get_item_by_path("sprites/characters/hero.json")
    assert found is not None
    assert found.id == asset_id
    assert source.get_item_by_path("sprites/hero.json") is None
    assert asset_repo.get_summary(asset_id).file_path == "sprites/characters/hero.json"


@pytest.mark.asyncio
async def test_save_after_rename_writes_to_new_location(source, asset_repo):
    asset_id = hero_id(asset_repo)
    asset_repo.rename(asset_id, "sprites/characters/hero.json")

    source.track_property_change(asset_id, "width", 64)
    await source.save()

    assert asset_repo.has_file("sprites/characters/hero.json")
    assert not asset_repo.has_file("sprites/hero.json")
    assert asset_repo.read_payload("sprites/characters/hero.json").width == 64
    assert asset_repo.read_metadata("sprites/characters/hero.json").guid == asset_id
    assert source.get_item(asset_id).file_path == "sprites/characters/hero.json"


def test_asset_id_text_forms():
    asset_id = AssetId.new()
    text = str(asset_id)

    assert len(text) == 32
    assert AssetId.parse(text) == asset_id
    assert hash(AssetId.parse(text)) == hash(asset_id)
    assert AssetId.parse("not-a-guid") == AssetId.empty()
    assert not AssetId.empty().is_valid
    with pytest.raises(AttributeError):
        asset_id.value = None


@pytest.mark.asyncio
async def test_string_keys_resolve_to_asset_ids(source, asset_repo):
    asset_id = hero_id(asset_repo)
    assert source.get_item(str(asset_id)).id == asset_id
    assert source.try_get_item("garbage") is None


# ========== Edits ==========

@pytest.mark.asyncio
async def test_payload_property_edit(source, asset_repo):
    asset_id = hero_id(asset_repo)

    assert source.track_property_change(asset_id, "width", 64) is True
    assert source.get_item_state(asset_id) == ChangeState.MODIFIED
    assert source.get_modified_properties(asset_id) == ["width"]
    assert source.get_data_for_editing(asset_id).width == 64

    assert source.track_property_change(asset_id, "width", 32) is False
    assert source.has_modifications is False


@pytest.mark.asyncio
async def test_update_metadata(source, asset_repo):
    asset_id = hero_id(asset_repo)

    assert source.update_metadata(asset_id, lambda m: setattr(m, "display_name", "Hero")) is True
    assert source.get_modified_properties(asset_id) == ["metadata.display_name"]
    assert source.get_item(asset_id).metadata.display_name == "Hero"

    source.update_metadata(asset_id, lambda m: m.tags.append("player"))
    assert source.is_property_modified(asset_id, "metadata.tags")

    source.update_metadata(asset_id, lambda m: setattr(m, "display_name", None))
    source.update_metadata(asset_id, lambda m: m.tags.clear())
    assert source.get_item_state(asset_id) == ChangeState.UNCHANGED


@pytest.mark.asyncio
async def test_update_metadata_cannot_change_identity(source, asset_repo):
    asset_id = hero_id(asset_repo)
    with pytest.raises(ValueError):
        source.update_metadata(asset_id, lambda m: setattr(m, "guid", AssetId.new()))
    assert source.has_modifications is False


@pytest.mark.asyncio
async def test_update_metadata_unknown_asset_is_noop(source):
    assert source.update_metadata(AssetId.new(), lambda m: setattr(m, "category", "x")) is False


@pytest.mark.asyncio
async def test_add_new_allocates_identity(source):
    asset = source.add_new(Sprite("bat"), "sprites/bat.json")

    assert asset.id.is_valid
    assert asset.metadata.guid == asset.id
    assert source.get_item_state(asset.id) == ChangeState.ADDED
    assert source.get_item_by_path("sprites/bat.json").id == asset.id
    assert [s.name for s in source.get_summaries()] == ["hero", "slime", "bat"]


@pytest.mark.asyncio
async def test_deleted_assets_hidden_from_summaries(source, asset_repo):
    source.delete(hero_id(asset_repo))
    assert [s.name for s in source.get_summaries()] == ["slime"]
    assert source.count == 1


# ========== Save ==========

@pytest.mark.asyncio
async def test_save_fans_out_to_files(source, asset_repo):
    slime_id = asset_repo.get_summary_by_path("sprites/slime.json").id
    hero = hero_id(asset_repo)

    bat = source.add_new(Sprite("bat"), "sprites/bat.json")
    source.update_metadata(hero, lambda m: setattr(m, "category", "characters"))
    source.delete(slime_id)

    await source.save()

    assert asset_repo.file_paths() == ["sprites/bat.json", "sprites/hero.json"]
    assert asset_repo.read_metadata("sprites/bat.json").guid == bat.id
    assert asset_repo.read_metadata("sprites/hero.json").category == "characters"
    assert asset_repo.read_metadata("sprites/slime.json") is None
    assert source.has_modifications is False
    assert source.get_item_state(bat.id) == ChangeState.UNCHANGED


@pytest.mark.asyncio
async def test_save_stamps_modified_at(source, asset_repo):
    asset_id = hero_id(asset_repo)
    before = asset_repo.read_metadata("sprites/hero.json").modified_at

    source.track_property_change(asset_id, "height", 48)
    await source.save()

    assert asset_repo.read_metadata("sprites/hero.json").modified_at >= before
    assert source.get_item_state(asset_id) == ChangeState.UNCHANGED


@pytest.mark.asyncio
async def test_metadata_file_uses_configured_extension(source):
    asset = source.add_new(Sprite("bat"), "sprites/bat.json")
    await source.save()
    assert InMemoryAssetRepository.metadata_path("sprites/bat.json") == "sprites/bat.json.datrameta"
    assert source.repository.read_metadata("sprites/bat.json").guid == asset.id


@pytest.mark.asyncio
async def test_failed_save_keeps_asset_changes():
    repo = FailingAssetRepository()
    repo.seed(Sprite("hero"), "sprites/hero.json")
    source = EditableAssetDataSource(repo)
    await source.initialize()
    asset_id = hero_id(repo)

    source.track_property_change(asset_id, "width", 64)
    bat = source.add_new(Sprite("bat"), "sprites/bat.json")
    changed = source.tracker.get_changed_keys()
    stamp = source.get_item(bat.id).metadata.modified_at

    with pytest.raises(IOError):
        await source.save()

    assert source.tracker.get_changed_keys() == changed
    assert source.get_modified_properties(asset_id) == ["width"]
    assert source.get_item(bat.id).metadata.modified_at == stamp
    assert repo.file_paths() == ["sprites/hero.json"]
    assert repo.read_payload("sprites/hero.json").width == 32

    repo.fail = False
    await source.save()
    assert repo.has_file("sprites/bat.json")
    assert source.get_item_state(bat.id) == ChangeState.UNCHANGED


@pytest.mark.asyncio
async def test_undoing_edit_after_failed_save_leaves_asset_unchanged():
    repo = FailingAssetRepository()
    repo.seed(Sprite("hero"), "sprites/hero.json")
    source = EditableAssetDataSource(repo)
    await source.initialize()
    asset_id = hero_id(repo)

    source.track_property_change(asset_id, "width", 64)
    with pytest.raises(IOError):
        await source.save()

    source.track_property_change(asset_id, "width", 32)
    assert source.get_item_state(asset_id) == ChangeState.UNCHANGED
    assert source.has_modifications is False


@pytest.mark.asyncio
async def test_failed_save_after_rename_does_not_adopt_new_path():
    repo = FailingAssetRepository()
    asset_id = repo.seed(Sprite("hero"), "sprites/hero.json")
    source = EditableAssetDataSource(repo)
    await source.initialize()
    repo.rename(asset_id, "sprites/characters/hero.json")

    source.track_property_change(asset_id, "width", 64)
    with pytest.raises(IOError):
        await source.save()

    assert source.get_modified_properties(asset_id) == ["width"]
    assert source.get_item(asset_id).file_path == "sprites/hero.json"

    repo.fail = False
    await source.save()
    assert source.get_item(asset_id).file_path == "sprites/characters/hero.json"
    assert repo.read_payload("sprites/characters/hero.json").width == 64


# ========== Accessors ==========

@pytest.mark.asyncio
async def test_metadata_guid_is_not_editable(source, asset_repo):
    asset_id = hero_id(asset_repo)

    with pytest.raises(AccessorError):
        source.track_property_change(asset_id, "metadata.guid", AssetId.new())

    assert source.get_item(asset_id).metadata.guid == asset_id
    assert source.has_modifications is False


@pytest.mark.asyncio
async def test_asset_accessor_table_is_reused_per_payload_type(source, asset_repo):
    hero = source.get_item(hero_id(asset_repo))
    slime = source.get_item(asset_repo.get_summary_by_path("sprites/slime.json").id)

    table = asset_accessors(hero)
    assert asset_accessors(slime) is table
    assert "metadata.display_name" in table
    assert "metadata.guid" not in table


# ========== Unsaved moves ==========

@pytest.mark.asyncio
async def test_get_item_by_path_follows_unsaved_move(source, asset_repo):
    asset_id = hero_id(asset_repo)
    source.track_property_change(asset_id, "file_path", "sprites/heroes/hero.json")

    found = source.get_item_by_path("sprites/heroes/hero.json")
    assert found is not None
    assert found.id == asset_id
    assert source.get_item_by_path("sprites/hero.json") is None

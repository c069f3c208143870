"""Tests for RepositoryChangeTracker: state machine, property diffs and notification."""
import pytest

from editstate import (
    AccessorError,
    ChangeState,
    DuplicateKeyError,
    RepositoryChangeTracker,
)

from conftest import Character, Row, Stats


@pytest.fixture
def tracker(rows):
    tracker = RepositoryChangeTracker(name="rows")
    tracker.initialize_baseline(rows)
    return tracker


# ========== Concrete scenarios ==========

def test_property_edit_marks_row_modified(tracker):
    """Baseline {1:A, 2:B}; editing 1.name makes 1 MODIFIED with one modified property."""
    assert tracker.track_property_change("1", "name", "A2") is True
    assert tracker.get_state("1") == ChangeState.MODIFIED
    assert tracker.get_modified_properties("1") == ["name"]
    assert tracker.get_working("1").name == "A2"


def test_setting_property_back_returns_to_unchanged(tracker):
    """Resetting the only modified property to its baseline value clears the entry."""
    tracker.track_property_change("1", "name", "A2")
    assert tracker.track_property_change("1", "name", "A") is False
    assert tracker.get_state("1") == ChangeState.UNCHANGED
    assert tracker.get_modified_properties("1") == []
    assert tracker.has_changes is False


def test_delete_of_added_key_collapses(tracker):
    """Add then delete of a new key leaves nothing tracked."""
    tracker.track_add("3", Row("3", "C"))
    assert tracker.get_state("3") == ChangeState.ADDED

    tracker.track_delete("3")
    assert "3" not in tracker.get_added_keys()
    assert tracker.get_state("3") is None
    assert tracker.has_changes is False


def test_delete_then_revert_restores_row(tracker):
    """A deleted row disappears from visible keys and comes back on revert."""
    tracker.track_delete("2")
    assert tracker.get_state("2") == ChangeState.DELETED
    assert tracker.visible_keys() == ["1"]

    tracker.revert("2")
    assert tracker.get_state("2") == ChangeState.UNCHANGED
    assert tracker.visible_keys() == ["1", "2"]


# ========== State machine ==========

def test_initialize_baseline_is_idempotent_per_key(tracker):
    """Reseeding does not disturb entries that are already tracked."""
    tracker.track_property_change("1", "name", "edited")
    tracker.initialize_baseline({"1": Row("1", "other"), "5": Row("5", "E")})

    assert tracker.get_working("1").name == "edited"
    assert tracker.get_property_baseline("1", "name") == "A"
    assert tracker.get_state("5") == ChangeState.UNCHANGED


def test_reset_baseline_drops_pending_changes(tracker):
    tracker.track_property_change("1", "name", "edited")
    tracker.reset_baseline({"9": Row("9", "Z")})

    assert tracker.keys() == ["9"]
    assert tracker.has_changes is False


def test_property_edit_on_untracked_key_is_noop(tracker):
    """Editing a key the tracker never saw does not create a phantom entry."""
    assert tracker.track_property_change("99", "name", "ghost") is False
    assert tracker.get_state("99") is None
    assert not tracker.contains("99")
    assert tracker.get_added_keys() == []


def test_delete_and_revert_untracked_key_are_noops(tracker):
    tracker.track_delete("99")
    tracker.revert("99")
    assert tracker.has_changes is False
    assert len(tracker) == 2


def test_duplicate_add_raises(tracker):
    with pytest.raises(DuplicateKeyError) as exc_info:
        tracker.track_add("1", Row("1", "again"))
    assert isinstance(exc_info.value, KeyError)
    assert exc_info.value.key == "1"

    tracker.track_add("3", Row("3", "C"))
    with pytest.raises(DuplicateKeyError):
        tracker.track_add("3", Row("3", "C"))


def test_readding_deleted_key_becomes_replacement(tracker):
    """A deleted key re-added with a different value is diffed against its old baseline."""
    tracker.track_delete("2")
    tracker.track_add("2", Row("2", "B2"))

    assert tracker.get_state("2") == ChangeState.MODIFIED
    assert tracker.get_modified_properties("2") == ["name"]
    assert tracker.get_property_baseline("2", "name") == "B"


def test_readding_deleted_key_with_same_value_is_unchanged(tracker):
    tracker.track_delete("2")
    tracker.track_add("2", Row("2", "B"))
    assert tracker.get_state("2") == ChangeState.UNCHANGED
    assert tracker.has_changes is False


def test_added_entry_stays_added_on_property_edit(tracker):
    tracker.track_add("3", Row("3", "C"))
    assert tracker.track_property_change("3", "name", "C2") is True
    assert tracker.get_state("3") == ChangeState.ADDED
    assert tracker.get_working("3").name == "C2"
    assert tracker.get_baseline("3") is None


def test_edits_to_deleted_entry_are_ignored(tracker):
    tracker.track_delete("2")
    assert tracker.track_property_change("2", "name", "Q") is False
    assert tracker.get_state("2") == ChangeState.DELETED
    assert tracker.get_working("2") is None


def test_delete_of_modified_entry_clears_its_diff(tracker):
    tracker.track_property_change("1", "name", "A2")
    tracker.track_delete("1")
    assert tracker.get_state("1") == ChangeState.DELETED
    assert tracker.get_modified_properties("1") == []

    tracker.revert("1")
    assert tracker.get_working("1").name == "A"


def test_unknown_property_raises_without_side_effects(tracker):
    with pytest.raises(AccessorError):
        tracker.track_property_change("1", "nickname", "x")
    assert tracker.get_state("1") == ChangeState.UNCHANGED
    assert tracker.has_changes is False


def test_accessor_error_is_attribute_error(tracker):
    with pytest.raises(AttributeError):
        tracker.track_property_change("1", "missing", 1)


def test_revert_all_restores_everything(tracker):
    tracker.track_add("3", Row("3", "C"))
    tracker.track_property_change("1", "name", "X")
    tracker.track_delete("2")

    tracker.revert()

    assert tracker.get_changed_keys() == []
    assert tracker.keys() == ["1", "2"]
    assert tracker.get_working("1") == Row("1", "A")
    assert all(tracker.get_state(k) == ChangeState.UNCHANGED for k in tracker.keys())


def test_changed_key_partitions_are_insertion_ordered(tracker):
    tracker.track_add("4", Row("4", "D"))
    tracker.track_delete("2")
    tracker.track_add("3", Row("3", "C"))
    tracker.track_property_change("1", "name", "X")

    assert tracker.get_added_keys() == ["4", "3"]
    assert tracker.get_modified_keys() == ["1"]
    assert tracker.get_deleted_keys() == ["2"]
    assert tracker.get_changed_keys() == ["4", "3", "1", "2"]


def test_rebase_adopts_working_copies(tracker):
    tracker.track_add("3", Row("3", "C"))
    tracker.track_property_change("1", "name", "X")
    tracker.track_delete("2")

    tracker.rebase()

    assert tracker.get_changed_keys() == []
    assert tracker.keys() == ["1", "3"]
    assert tracker.get_baseline("1") == Row("1", "X")
    assert tracker.get_baseline("3") == Row("3", "C")
    assert tracker.get_state("3") == ChangeState.UNCHANGED


def test_rebase_subset_keeps_other_changes_pending(tracker):
    tracker.track_property_change("1", "name", "X")
    tracker.track_property_change("2", "name", "Y")

    tracker.rebase(["1"])

    assert tracker.get_state("1") == ChangeState.UNCHANGED
    assert tracker.get_state("2") == ChangeState.MODIFIED
    assert tracker.has_changes is True


def test_visible_keys_with_registry(tracker):
    """Visible keys = (registry keys + added keys) - deleted keys."""
    tracker.track_add("3", Row("3", "C"))
    tracker.track_delete("1")

    assert tracker.visible_keys(["1", "2"]) == ["2", "3"]


# ========== Values and baselines ==========

def test_baseline_is_not_aliased(tracker):
    """Mutating a returned baseline never affects the tracker."""
    baseline = tracker.get_baseline("1")
    baseline.name = "mutated"
    assert tracker.get_baseline("1").name == "A"


def test_baseline_is_independent_of_source(rows):
    tracker = RepositoryChangeTracker()
    tracker.initialize_baseline(rows)
    rows["1"].name = "changed at source"
    assert tracker.get_baseline("1").name == "A"
    assert tracker.get_working("1").name == "A"


def test_property_baseline_is_captured_on_first_touch(tracker):
    tracker.track_property_change("1", "name", "first")
    tracker.track_property_change("1", "name", "second")
    assert tracker.get_property_baseline("1", "name") == "A"
    assert tracker.get_entry("1").modified_properties == {"name": "A"}


def test_track_value_change_diffs_every_property(tracker):
    assert tracker.track_value_change("1", Row("1", "Z")) is True
    assert tracker.get_modified_properties("1") == ["name"]

    assert tracker.track_value_change("1", Row("1", "A")) is False
    assert tracker.get_state("1") == ChangeState.UNCHANGED


def test_revert_property_restores_one_field():
    tracker = RepositoryChangeTracker()
    tracker.initialize_baseline({"c": Character("c", "Hero")})
    tracker.track_property_change("c", "name", "Villain")
    tracker.track_property_change("c", "stats.attack", 99)

    assert tracker.revert_property("c", "name") is True
    assert tracker.get_modified_properties("c") == ["stats.attack"]
    assert tracker.get_working("c").name == "Hero"
    assert tracker.get_state("c") == ChangeState.MODIFIED

    assert tracker.revert_property("c", "name") is False


# ========== Nested properties ==========

def test_nested_property_edit():
    tracker = RepositoryChangeTracker()
    tracker.initialize_baseline({"c": Character("c", "Hero")})

    assert tracker.track_property_change("c", "stats.attack", 20) is True
    assert tracker.get_modified_properties("c") == ["stats.attack"]
    assert tracker.get_property_baseline("c", "stats.attack") == 10
    assert tracker.get_working("c").stats.attack == 20


def test_container_edit_settles_leaf_edit():
    """Replacing a nested object with one equal to baseline clears leaf diffs beneath it."""
    tracker = RepositoryChangeTracker()
    tracker.initialize_baseline({"c": Character("c", "Hero")})

    tracker.track_property_change("c", "stats.attack", 20)
    tracker.track_property_change("c", "stats", Stats(attack=10, defense=5))

    assert tracker.get_state("c") == ChangeState.UNCHANGED
    assert tracker.has_changes is False


def test_list_property_compared_by_value():
    tracker = RepositoryChangeTracker()
    tracker.initialize_baseline({"c": Character("c", "Hero", tags=["a"])})

    assert tracker.track_property_change("c", "tags", ["a", "b"]) is True
    assert tracker.track_property_change("c", "tags", ["a"]) is False
    assert tracker.get_state("c") == ChangeState.UNCHANGED


def test_new_value_is_copied_into_working():
    tracker = RepositoryChangeTracker()
    tracker.initialize_baseline({"c": Character("c", "Hero")})
    tags = ["x"]
    tracker.track_property_change("c", "tags", tags)
    tags.append("y")
    assert tracker.get_working("c").tags == ["x"]


def test_dict_values_track_keys_as_properties():
    tracker = RepositoryChangeTracker()
    tracker.initialize_baseline({"cfg": {"volume": 5, "muted": False}})

    assert tracker.track_property_change("cfg", "volume", 7) is True
    assert tracker.track_property_change("cfg", "language", "en") is True
    assert sorted(tracker.get_modified_properties("cfg")) == ["language", "volume"]
    assert tracker.get_property_baseline("cfg", "language") is None

    tracker.track_property_change("cfg", "volume", 5)
    assert tracker.get_modified_properties("cfg") == ["language"]


def test_dict_key_absent_from_baseline_differs_from_none():
    tracker = RepositoryChangeTracker()
    tracker.initialize_baseline({"1": {"id": "1"}})

    assert tracker.track_property_change("1", "extra", None) is True
    assert tracker.get_state("1") == ChangeState.MODIFIED
    assert tracker.get_working("1") == {"id": "1", "extra": None}
    assert tracker.get_property_baseline("1", "extra") is None

    assert tracker.revert_property("1", "extra") is True
    assert tracker.get_state("1") == ChangeState.UNCHANGED
    assert tracker.get_working("1") == {"id": "1"}


def test_dict_value_replacement_detects_removed_key():
    tracker = RepositoryChangeTracker()
    tracker.initialize_baseline({"1": {"id": "1", "note": None}})

    assert tracker.track_value_change("1", {"id": "1"}) is True
    assert tracker.get_modified_properties("1") == ["note"]


# ========== Notification ==========

def test_notification_fires_only_on_transitions(tracker):
    events = []
    tracker.on_modified_state_changed(events.append)

    tracker.track_property_change("1", "name", "X")
    tracker.track_property_change("1", "name", "Y")
    tracker.track_delete("2")
    assert events == [True]

    tracker.revert()
    assert events == [True, False]


def test_notification_on_add_delete_collapse(tracker):
    events = []
    tracker.on_modified_state_changed(events.append)

    tracker.track_add("3", Row("3", "C"))
    tracker.track_delete("3")
    assert events == [True, False]


def test_unsubscribed_callback_not_called(tracker):
    events = []
    tracker.on_modified_state_changed(events.append)
    tracker.off_modified_state_changed(events.append)

    tracker.track_property_change("1", "name", "X")
    assert events == []


def test_failing_callback_does_not_break_others(tracker):
    events = []

    def broken(has_changes):
        raise RuntimeError("boom")

    tracker.on_modified_state_changed(broken)
    tracker.on_modified_state_changed(events.append)

    tracker.track_property_change("1", "name", "X")
    assert events == [True]
    assert tracker.get_state("1") == ChangeState.MODIFIED

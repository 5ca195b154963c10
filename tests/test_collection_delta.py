from datetime import datetime, timezone

import pytest

from tripstore.services.collection_delta import (
    apply_delta,
    create_delta,
    has_collection_changes,
    is_collection_delta_shape,
)

A = {"id": "a", "name": "Alpha", "n": 1}
B = {"id": "b", "name": "Bravo", "n": 2}
C = {"id": "c", "name": "Charlie", "n": 3}


@pytest.mark.parametrize(
    "items",
    [
        [],
        [A],
        [A, B, C],
        [{"id": "x", "when": datetime(2024, 1, 1, tzinfo=timezone.utc), "tags": ["a"]}],
    ],
)
def test_create_delta_of_identical_lists_is_none(items):
    assert create_delta(items, [dict(i) for i in items]) is None


def test_create_delta_reports_added_updated_removed():
    changed_b = {**B, "name": "Bravo!"}
    delta = create_delta([A, B, C], [A, changed_b, {"id": "d", "name": "Delta"}])

    assert delta["added"] == [{"id": "d", "name": "Delta"}]
    # Full object, not a field patch
    assert delta["updated"] == [changed_b]
    assert delta["removedIds"] == ["c"]
    assert delta["order"] == ["a", "b", "d"]


def test_create_delta_reorder_only():
    assert create_delta([A, B], [B, A]) == {"order": ["b", "a"]}


def test_create_delta_ignores_key_order_and_date_representation():
    before = [{"id": "a", "x": 1, "y": 2, "at": datetime(2024, 1, 1, tzinfo=timezone.utc)}]
    after = [{"y": 2, "at": "2024-01-01T00:00:00.000Z", "id": "a", "x": 1}]
    assert create_delta(before, after) is None


def test_create_delta_does_not_alias_current_objects():
    current = [A, {"id": "z", "nested": {"v": 1}}]
    delta = create_delta([A], current)
    current[1]["nested"]["v"] = 99
    assert delta["added"][0]["nested"]["v"] == 1


@pytest.mark.parametrize(
    "previous,current",
    [
        ([A, B, C], [C, A, B]),
        ([A, B, C], [{**C, "n": 30}, A, {"id": "d", "name": "Delta", "n": 4}]),
        ([], [A, B]),
        ([A, B], []),
        ([A], [{**A, "extra": {"deep": [1, 2]}}]),
    ],
)
def test_apply_created_delta_reproduces_current(previous, current):
    assert apply_delta(previous, create_delta(previous, current)) == current


def test_apply_order_appends_unmentioned_ids():
    result = apply_delta([A, B, C], {"order": ["b", "a"]})
    assert [item["id"] for item in result] == ["b", "a", "c"]


def test_apply_order_skips_unknown_and_duplicate_ids():
    result = apply_delta([A, B, C], {"order": ["zz", "c", "c", "a"]})
    assert [item["id"] for item in result] == ["c", "a", "b"]


def test_apply_order_after_removal():
    result = apply_delta([A, B, C], {"removedIds": ["a"], "order": ["c", "a", "b"]})
    assert [item["id"] for item in result] == ["c", "b"]


def test_added_with_existing_id_merges_instead_of_duplicating():
    result = apply_delta([A], {"added": [{"id": "a", "name": "Alpha 2"}]})
    assert result == [{"id": "a", "name": "Alpha 2", "n": 1}]


def test_updated_merges_fields():
    result = apply_delta([A, B], {"updated": [{"id": "b", "n": 20}]})
    assert result[1] == {"id": "b", "name": "Bravo", "n": 20}


def test_updated_with_unknown_id_is_dropped():
    result = apply_delta([A], {"updated": [{"id": "ghost", "name": "Ghost"}]})
    assert result == [A]


def test_entries_without_valid_id_are_skipped():
    result = apply_delta(
        [A],
        {
            "added": [{"id": ""}, {"id": "   "}, {"id": 5}, {"name": "no id"}, None],
            "updated": [{"name": "still no id"}],
            "removedIds": ["", None],
        },
    )
    assert result == [A]


def test_apply_does_not_mutate_input():
    existing = [{"id": "a", "tags": ["x"]}]
    result = apply_delta(existing, {"updated": [{"id": "a", "tags": ["y"]}]})
    assert existing == [{"id": "a", "tags": ["x"]}]
    result[0]["tags"].append("z")
    assert existing[0]["tags"] == ["x"]


def test_apply_without_delta_returns_deep_copy():
    existing = [{"id": "a", "nested": {"v": 1}}]
    result = apply_delta(existing, None)
    assert result == existing
    assert result[0] is not existing[0]
    assert result[0]["nested"] is not existing[0]["nested"]


def test_has_collection_changes():
    assert not has_collection_changes(None)
    assert not has_collection_changes({})
    assert not has_collection_changes({"added": [], "order": []})
    assert has_collection_changes({"removedIds": ["a"]})
    assert has_collection_changes({"order": ["a"]})


def test_is_collection_delta_shape():
    assert is_collection_delta_shape({})
    assert is_collection_delta_shape({"added": [], "order": None})
    assert not is_collection_delta_shape([])
    assert not is_collection_delta_shape({"added": {"id": "a"}})
    assert not is_collection_delta_shape({"removedIds": "a"})

"""Diff/patch for ordered, id-keyed collections (locations, routes, expenses...).

A delta is a plain dict::

    {"added": [...], "updated": [...], "removedIds": [...], "order": [...]}

with every key optional. Entities are compared by their canonical JSON form,
so two objects that would persist identically are never reported as changed.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from tripstore.db.serialization import canonical, clone

CollectionDelta = Dict[str, Any]
DELTA_KEYS = ("added", "updated", "removedIds", "order")


def is_valid_id(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _id_of(item: Any) -> Any:
    return item.get("id") if isinstance(item, Mapping) else None


def has_collection_changes(delta: Optional[Mapping[str, Any]]) -> bool:
    if not delta:
        return False
    return any(isinstance(delta.get(key), list) and delta[key] for key in DELTA_KEYS)


def is_collection_delta_shape(value: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    return all(value.get(key) is None or isinstance(value[key], list) for key in DELTA_KEYS)


def create_delta(
    previous: Sequence[Mapping[str, Any]], current: Sequence[Mapping[str, Any]]
) -> Optional[CollectionDelta]:
    """Describe how to turn ``previous`` into ``current``; None when equal.

    Updated entries carry the full current object, not a field patch. When the
    id sequence differs, ``order`` holds the complete current sequence.
    """
    previous_by_id = {_id_of(item): item for item in previous}
    current_ids = {_id_of(item) for item in current}

    added = [item for item in current if _id_of(item) not in previous_by_id]
    updated = [
        item
        for item in current
        if _id_of(item) in previous_by_id
        and canonical(previous_by_id[_id_of(item)]) != canonical(item)
    ]
    removed_ids = [_id_of(item) for item in previous if _id_of(item) not in current_ids]

    previous_order = [_id_of(item) for item in previous]
    current_order = [_id_of(item) for item in current]

    delta: CollectionDelta = {}
    if added:
        delta["added"] = clone(added)
    if updated:
        delta["updated"] = clone(updated)
    if removed_ids:
        delta["removedIds"] = removed_ids
    if previous_order != current_order:
        delta["order"] = current_order
    return delta if has_collection_changes(delta) else None


def apply_delta(
    existing: Sequence[Mapping[str, Any]], delta: Optional[Mapping[str, Any]] = None
) -> List[Dict[str, Any]]:
    """Apply ``delta`` to a deep copy of ``existing``.

    - an ``added`` entry whose id already exists is merged into it, not duplicated
    - ``updated`` entries with an unknown id are dropped, never created
    - ids missing from ``order`` keep their relative order at the end
    """
    merged: List[Dict[str, Any]] = [clone(dict(item)) for item in existing]
    if not delta:
        return merged

    index_by_id = {_id_of(item): i for i, item in enumerate(merged)}

    for candidate in delta.get("added") or []:
        candidate_id = _id_of(candidate)
        if not is_valid_id(candidate_id):
            continue
        index = index_by_id.get(candidate_id)
        if index is None:
            index_by_id[candidate_id] = len(merged)
            merged.append(clone(dict(candidate)))
        else:
            merged[index] = {**merged[index], **clone(dict(candidate))}

    for candidate in delta.get("updated") or []:
        candidate_id = _id_of(candidate)
        if not is_valid_id(candidate_id):
            continue
        index = index_by_id.get(candidate_id)
        if index is None:
            continue
        merged[index] = {**merged[index], **clone(dict(candidate))}

    removed = {i for i in delta.get("removedIds") or [] if is_valid_id(i)}
    if removed:
        merged = [item for item in merged if _id_of(item) not in removed]

    order = delta.get("order") or []
    if not order:
        return merged

    by_id = {_id_of(item): item for item in merged}
    seen = set()
    reordered = []
    for item_id in order:
        if not is_valid_id(item_id) or item_id in seen or item_id not in by_id:
            continue
        reordered.append(by_id[item_id])
        seen.add(item_id)
    reordered.extend(item for item in merged if _id_of(item) not in seen)
    return reordered

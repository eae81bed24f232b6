# hotelguard/forensics.py
"""
Structural diffing and hashing for the forensic ledger.

The tree walk is done by DeepDiff; this module turns its report into the
flat ``Change`` list stored with each history entry. A change is addressed by
a path from the record root. List elements are matched by identity: a mapping
with an ``id`` is identified by that id, anything else by its canonical JSON.
A matched element whose order relative to the other matched elements changed
is reported as ``moved`` instead of a removal plus an addition.
"""
import copy
import hashlib
import json
from collections import defaultdict
from collections.abc import Mapping
from typing import Any, Dict, List, Tuple

from deepdiff import DeepDiff
from deepdiff.helper import CannotCompare

from hotelguard.schemas import Change, Diff

# report types produced by DeepDiff for JSON documents
_REMOVED = ("dictionary_item_removed", "iterable_item_removed")
_ADDED = ("dictionary_item_added", "iterable_item_added")
_MODIFIED = ("values_changed", "type_changes")
_MOVED = "iterable_item_moved"

_OP_ORDER = {"removed": 0, "moved": 1, "added": 2, "modified": 3}


def canonicalize(data: Any) -> str:
    """Canonical JSON (sorted keys, compact separators) used for identity and hashing."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def hash_payload(data: Any) -> str:
    """SHA-256 hex digest of the canonical JSON of ``data``."""
    return hashlib.sha256(canonicalize(data).encode("utf-8")).hexdigest()


def detached_copy(data: Any) -> Any:
    """Deep copy that shares nothing with the caller's object."""
    return copy.deepcopy(data)


def object_hash(value: Any) -> str:
    if isinstance(value, Mapping) and value.get("id") is not None:
        return "id:" + canonicalize(value["id"])
    return "json:" + canonicalize(value)


def _identity_matcher():
    # Lists holding the same identity twice are compared position by position.
    repeats: Dict[int, bool] = {}

    def same_identity(x: Any, y: Any, level=None) -> bool:
        for items in (level.t1, level.t2):
            if id(items) not in repeats:
                hashes = [object_hash(item) for item in items]
                repeats[id(items)] = len(set(hashes)) != len(hashes)
            if repeats[id(items)]:
                raise CannotCompare() from None
        return object_hash(x) == object_hash(y)

    return same_identity


def _sort_key(change: Change) -> Tuple:
    path = tuple((0, p, "") if isinstance(p, int) else (1, 0, str(p)) for p in change.path)
    return path, _OP_ORDER[change.op]


def compute_diff(old: Any, new: Any) -> Diff:
    """
    Diff two JSON documents. Identical inputs give an empty diff, never None.
    """
    tree = DeepDiff(
        old,
        new,
        view="tree",
        iterable_compare_func=_identity_matcher(),
        threshold_to_diff_deeper=0,
    )

    changes: List[Change] = []
    removed_at: Dict[Tuple, List[int]] = defaultdict(list)
    added_at: Dict[Tuple, List[int]] = defaultdict(list)

    for report in _REMOVED:
        for level in tree.get(report, ()):
            path = level.path(output_format="list")
            changes.append(Change(op="removed", path=path, old=level.t1))
            if report == "iterable_item_removed":
                removed_at[tuple(path[:-1])].append(path[-1])

    for report in _ADDED:
        for level in tree.get(report, ()):
            path = level.path(output_format="list")
            changes.append(Change(op="added", path=path, new=level.t2))
            if report == "iterable_item_added":
                added_at[tuple(path[:-1])].append(path[-1])

    for report in _MODIFIED:
        for level in tree.get(report, ()):
            changes.append(Change(op="modified", path=level.path(output_format="list"), old=level.t1, new=level.t2))

    for level in tree.get(_MOVED, ()):
        parent = level.path(output_format="list")[:-1]
        src = level.t1_child_rel.param
        dst = level.t2_child_rel.param
        # a shift caused only by insertions or removals keeps the relative order
        src_rank = src - sum(1 for i in removed_at[tuple(parent)] if i < src)
        dst_rank = dst - sum(1 for j in added_at[tuple(parent)] if j < dst)
        if src_rank != dst_rank:
            changes.append(Change(op="moved", path=parent + [dst], from_index=src, to_index=dst))

    changes.sort(key=_sort_key)
    return Diff(changes=changes)

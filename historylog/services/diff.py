"""Field-level diff between two snapshots.

Keys are visited in sorted order at every level, so the same pair of
snapshots always yields the same sequence of changes. Nested mappings are
walked into; lists and scalars are compared as whole values.
"""
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from historylog.config import settings
from historylog.schemas.history import Change, ChangeKind


class FieldPolicy:
    """Set of dotted paths (and their descendants) never visited by the diff."""

    def __init__(self, omit_paths: Optional[Iterable[str]] = None):
        if omit_paths is None:
            omit_paths = settings.HISTORY_OMIT_PATHS
        self.omit_paths = frozenset(omit_paths)

    def excludes(self, path: str) -> bool:
        return any(path == p or path.startswith(p + ".") for p in self.omit_paths)

    def __repr__(self) -> str:
        return f"FieldPolicy({sorted(self.omit_paths)!r})"


def _deep_equal(a: Any, b: Any) -> bool:
    # bool is an int subclass; True must not equal 1 here
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return a.keys() == b.keys() and all(_deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(_deep_equal(x, y) for x, y in zip(a, b))
    return a == b


def _prune(value: Any, path: str, policy: FieldPolicy) -> Any:
    """Drop excluded descendants from a whole value carried by a single change."""
    if not isinstance(value, Mapping):
        return value
    return {
        k: _prune(v, f"{path}.{k}", policy)
        for k, v in value.items()
        if not policy.excludes(f"{path}.{k}")
    }


def _walk(old: Mapping, new: Mapping, prefix: str, policy: FieldPolicy, changes: list[Change]) -> None:
    for key in sorted(set(old) | set(new), key=str):
        path = f"{prefix}{key}"
        if policy.excludes(path):
            continue
        if key not in old:
            changes.append(Change(path=path, kind=ChangeKind.added, new=_prune(new[key], path, policy)))
        elif key not in new:
            changes.append(Change(path=path, kind=ChangeKind.removed, old=_prune(old[key], path, policy)))
        elif isinstance(old[key], Mapping) and isinstance(new[key], Mapping):
            _walk(old[key], new[key], f"{path}.", policy, changes)
        else:
            before = _prune(old[key], path, policy)
            after = _prune(new[key], path, policy)
            if not _deep_equal(before, after):
                changes.append(Change(path=path, kind=ChangeKind.modified, old=before, new=after))


def diff(old: Optional[Mapping], new: Optional[Mapping], policy: Optional[FieldPolicy] = None) -> list[Change]:
    """Changes turning ``old`` into ``new``; empty when nothing differs."""
    changes: list[Change] = []
    _walk(old or {}, new or {}, "", policy or FieldPolicy(), changes)
    return changes

"""Tests for the diff engine: ordering, exclusion and the algebraic properties."""
import pytest

from historylog.schemas.history import Change, ChangeKind
from historylog.services.diff import FieldPolicy, diff

POLICY = FieldPolicy(["id", "version"])

SNAPSHOTS = [
    {},
    {"name": "Ann", "age": 30},
    {"name": "Ann", "age": 31, "tags": ["a", "b"]},
    {"name": "Bob", "profile": {"city": "Oslo", "zip": "0150"}, "id": 4},
    {"name": "Bob", "profile": {"city": "Bergen"}, "version": 7, "active": True},
    {"profile": "none", "tags": ["b", "a"], "active": 1},
]


def _as_json(changes: list[Change]) -> list[dict]:
    return [c.to_json() for c in changes]


class TestScenarios:
    """Create, update, no-op update and delete shapes."""

    def test_create(self):
        changes = diff({}, {"name": "Ann", "age": 30}, POLICY)
        assert _as_json(changes) == [
            {"path": "age", "kind": "added", "new": 30},
            {"path": "name", "kind": "added", "new": "Ann"},
        ]

    def test_update(self):
        changes = diff({"name": "Ann", "age": 30}, {"name": "Ann", "age": 31}, POLICY)
        assert _as_json(changes) == [{"path": "age", "kind": "modified", "old": 30, "new": 31}]

    def test_noop_update(self):
        assert diff({"name": "Ann"}, {"name": "Ann"}, POLICY) == []

    def test_delete(self):
        changes = diff({"name": "Ann"}, {}, POLICY)
        assert _as_json(changes) == [{"path": "name", "kind": "removed", "old": "Ann"}]

    def test_none_snapshots_are_empty(self):
        assert diff(None, None, POLICY) == []
        assert _as_json(diff(None, {"a": 1}, POLICY)) == [{"path": "a", "kind": "added", "new": 1}]


class TestNested:
    def test_nested_mappings_use_dotted_paths(self):
        old = {"profile": {"city": "Oslo", "zip": "0150"}}
        new = {"profile": {"city": "Bergen", "zip": "0150", "country": "NO"}}
        assert _as_json(diff(old, new, POLICY)) == [
            {"path": "profile.city", "kind": "modified", "old": "Oslo", "new": "Bergen"},
            {"path": "profile.country", "kind": "added", "new": "NO"},
        ]

    def test_lists_compare_as_whole_values(self):
        changes = diff({"tags": ["a", "b"]}, {"tags": ["b", "a"]}, POLICY)
        assert _as_json(changes) == [
            {"path": "tags", "kind": "modified", "old": ["a", "b"], "new": ["b", "a"]},
        ]

    def test_equal_lists_of_mappings_produce_nothing(self):
        value = [{"sku": "x", "qty": 1}]
        assert diff({"items": value}, {"items": [dict(value[0])]}, POLICY) == []

    def test_mapping_replaced_by_scalar(self):
        changes = diff({"profile": {"city": "Oslo"}}, {"profile": None}, POLICY)
        assert _as_json(changes) == [
            {"path": "profile", "kind": "modified", "old": {"city": "Oslo"}, "new": None},
        ]

    def test_bool_and_int_are_distinct(self):
        changes = diff({"active": 1}, {"active": True}, POLICY)
        assert [c.kind for c in changes] == [ChangeKind.modified]

    def test_int_and_float_of_same_value_are_equal(self):
        assert diff({"score": 1}, {"score": 1.0}, POLICY) == []


class TestFieldPolicy:
    def test_default_omits_identifier_and_version(self):
        policy = FieldPolicy(["id", "version"])
        assert diff({"id": 1, "version": 1}, {"id": 2, "version": 2}, policy) == []

    def test_excluded_path_and_descendants_never_appear(self):
        policy = FieldPolicy(["profile.secret"])
        old = {"profile": {"secret": "a", "city": "Oslo"}}
        new = {"profile": {"secret": "b", "city": "Oslo", "nested": {"secret": 1}}}
        changes = diff(old, new, policy)
        assert _as_json(changes) == [
            {"path": "profile.nested", "kind": "added", "new": {"secret": 1}},
        ]

    def test_excluded_descendants_are_pruned_from_whole_values(self):
        policy = FieldPolicy(["profile.secret"])
        changes = diff({}, {"profile": {"secret": "s", "city": "Oslo"}}, policy)
        assert _as_json(changes) == [{"path": "profile", "kind": "added", "new": {"city": "Oslo"}}]

    def test_prefix_is_not_a_parent(self):
        policy = FieldPolicy(["id"])
        changes = diff({}, {"identity": "x"}, policy)
        assert [c.path for c in changes] == ["identity"]


@pytest.mark.parametrize("a", SNAPSHOTS)
def test_reflexive(a):
    assert diff(a, a, POLICY) == []


@pytest.mark.parametrize("a", SNAPSHOTS)
@pytest.mark.parametrize("b", SNAPSHOTS)
def test_anti_symmetric(a, b):
    forward = diff(a, b, POLICY)
    backward = diff(b, a, POLICY)
    swap = {ChangeKind.added: ChangeKind.removed, ChangeKind.removed: ChangeKind.added,
            ChangeKind.modified: ChangeKind.modified}

    assert [c.path for c in forward] == [c.path for c in backward]
    for f, r in zip(forward, backward):
        assert r.kind == swap[f.kind]
        assert f.old == r.new
        assert f.new == r.old


@pytest.mark.parametrize("a", SNAPSHOTS)
@pytest.mark.parametrize("b", SNAPSHOTS)
def test_excluded_paths_never_reported(a, b):
    policy = FieldPolicy(["profile", "id", "version"])
    for change in diff(a, b, policy):
        assert change.path != "profile" and not change.path.startswith("profile.")
        assert change.path not in ("id", "version")


def test_deterministic():
    a, b = SNAPSHOTS[2], SNAPSHOTS[4]
    assert diff(a, b, POLICY) == diff(dict(reversed(list(a.items()))), b, POLICY)

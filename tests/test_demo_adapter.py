"""Unit tests for the MongoDB demo directory with mocked collections."""

import logging
from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import OperationFailure, PyMongoError, ServerSelectionTimeoutError

from adapters.demo_adapter import DemoAdapter
from groupsync.errors import (
    DirectoryQueryError,
    DirectoryUnavailableError,
    GroupLookupError,
    MutationError,
)
from groupsync.models import DirectoryObject, ObjectClass
from groupsync.service import ReconciliationService

GROUP_DN = "CN=RG_Permian_Share,OU=Resources,DC=demo,DC=local"


@pytest.fixture
def collections():
    return {name: MagicMock(name=name) for name in ("objects", "memberships", "audit")}


@pytest.fixture
def adapter(collections):
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: collections[name]
    with patch("adapters.demo_adapter.MongoClient") as client_cls:
        client_cls.return_value.__getitem__.return_value = db
        yield DemoAdapter("mongodb://localhost:27017", seed=False)


def test_requires_uri():
    with pytest.raises(ValueError):
        DemoAdapter("")


def test_indexes_created(adapter, collections):
    assert collections["memberships"].create_index.called
    assert collections["objects"].create_index.called


@pytest.mark.parametrize("seed", [True, False])
def test_seed_flag_alone_decides_seeding(collections, monkeypatch, seed):
    monkeypatch.setenv("DEMO_AUTO_SEED", "false")
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: collections[name]
    with patch("adapters.demo_adapter.MongoClient") as client_cls, patch.object(
        DemoAdapter, "seed_if_empty"
    ) as seed_if_empty:
        client_cls.return_value.__getitem__.return_value = db
        DemoAdapter("mongodb://localhost:27017", seed=seed)

    assert seed_if_empty.called is seed


class TestLookupGroup:
    def test_single_match(self, adapter, collections):
        collections["objects"].find.return_value = [{"_id": GROUP_DN, "name": "RG_Permian_Share"}]

        group = adapter.lookup_group("RG_Permian_Share")

        assert group.distinguished_name == GROUP_DN
        query = collections["objects"].find.call_args.args[0]
        assert query["objectClass"] == "group"

    def test_ambiguous(self, adapter, collections):
        collections["objects"].find.return_value = [{"_id": "CN=a"}, {"_id": "CN=b"}]

        with pytest.raises(GroupLookupError) as excinfo:
            adapter.lookup_group("dup")

        assert excinfo.value.match_count == 2

    def test_unreachable(self, adapter, collections):
        collections["objects"].find.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(DirectoryUnavailableError):
            adapter.lookup_group("RG_Permian_Share")

    def test_query_failure(self, adapter, collections):
        collections["objects"].find.side_effect = OperationFailure("not authorized", code=13)

        with pytest.raises(DirectoryQueryError, match="not authorized"):
            adapter.lookup_group("RG_Permian_Share")


class TestListDirectChildren:
    def test_keeps_membership_order_and_requested_properties(self, adapter, collections):
        collections["memberships"].find.return_value = [
            {"memberDn": "CN=ROLE,DC=demo,DC=local"},
            {"memberDn": "CN=Jane,DC=demo,DC=local"},
            {"memberDn": "CN=Dangling,DC=demo,DC=local"},
        ]
        collections["objects"].find.return_value = [
            {"_id": "CN=Jane,DC=demo,DC=local", "objectClass": "user", "name": "Jane", "mail": "j@demo"},
            {"_id": "CN=ROLE,DC=demo,DC=local", "objectClass": "group", "name": "ROLE"},
        ]

        children = adapter.list_direct_children(GROUP_DN, True, ["name"])

        assert [c.distinguished_name for c in children] == [
            "CN=ROLE,DC=demo,DC=local",
            "CN=Jane,DC=demo,DC=local",
        ]
        assert children[0].object_class is ObjectClass.GROUP
        assert children[1].properties == {"name": "Jane"}

    def test_group_filter_pushed_to_query(self, adapter, collections):
        collections["memberships"].find.return_value = [{"memberDn": "CN=Jane,DC=demo,DC=local"}]
        collections["objects"].find.return_value = []

        adapter.list_direct_children(GROUP_DN, False, [])

        criteria = collections["objects"].find.call_args.args[0]
        assert criteria["objectClass"] == {"$ne": "group"}

    def test_empty_group_skips_object_query(self, adapter, collections):
        collections["memberships"].find.return_value = []

        assert adapter.list_direct_children(GROUP_DN, True, []) == []
        collections["objects"].find.assert_not_called()

    def test_query_failure(self, adapter, collections):
        collections["memberships"].find.side_effect = OperationFailure("operation exceeded time limit", code=50)

        with pytest.raises(DirectoryQueryError):
            adapter.list_direct_children(GROUP_DN, True, [])


def test_query_failure_skips_only_that_identity(adapter, collections):
    def find(query, *args):
        if "$or" in query:
            identity = query["$or"][1]["name"]
            if identity == "RG_Bad":
                raise OperationFailure("not authorized on groupsync_demo", code=13)
            return [{"_id": GROUP_DN, "name": identity}]
        return []

    collections["objects"].find.side_effect = find
    collections["memberships"].find.return_value = []

    run = ReconciliationService(adapter).run(["RG_Good", "RG_Bad", "RG_Good"])

    assert [r.group.name for r in run.results] == ["RG_Good", "RG_Good"]
    assert [s.identity for s in run.skipped] == ["RG_Bad"]


class TestMutations:
    def test_add_members_upserts_and_audits(self, adapter, collections):
        collections["objects"].find_one.return_value = {"_id": GROUP_DN}

        adapter.add_members(GROUP_DN, [DirectoryObject("CN=Jane,DC=demo,DC=local")])

        filter_doc = collections["memberships"].update_one.call_args.args[0]
        assert filter_doc == {"groupDn": GROUP_DN, "memberDn": "CN=Jane,DC=demo,DC=local"}
        assert collections["memberships"].update_one.call_args.kwargs["upsert"] is True
        audit_doc = collections["audit"].insert_one.call_args.args[0]
        assert audit_doc["op"] == "ADD"
        assert audit_doc["count"] == 1

    def test_remove_members(self, adapter, collections):
        collections["objects"].find_one.return_value = {"_id": GROUP_DN}

        adapter.remove_members(GROUP_DN, [DirectoryObject("CN=Jane,DC=demo,DC=local")])

        collections["memberships"].delete_many.assert_called_once_with(
            {"groupDn": GROUP_DN, "memberDn": {"$in": ["CN=Jane,DC=demo,DC=local"]}}
        )

    def test_audit_failure_is_logged(self, adapter, collections, caplog):
        collections["objects"].find_one.return_value = {"_id": GROUP_DN}
        collections["audit"].insert_one.side_effect = PyMongoError("audit down")

        with caplog.at_level(logging.WARNING, logger="adapters.demo_adapter"):
            adapter.remove_members(GROUP_DN, [DirectoryObject("CN=Jane,DC=demo,DC=local")])

        assert collections["memberships"].delete_many.called
        assert "Could not record REMOVE audit entry" in caplog.text

    def test_unknown_group_is_rejected(self, adapter, collections):
        collections["objects"].find_one.return_value = None

        with pytest.raises(MutationError):
            adapter.add_members("CN=Nope,DC=demo,DC=local", [DirectoryObject("CN=Jane,DC=demo,DC=local")])

        collections["memberships"].update_one.assert_not_called()

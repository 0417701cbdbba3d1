from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Dict, List, Sequence

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, OperationFailure, PyMongoError

from groupsync.errors import (
    DirectoryQueryError,
    DirectoryUnavailableError,
    GroupLookupError,
    MutationError,
)
from groupsync.models import (
    CLASS_PROPERTY,
    DN_PROPERTY,
    DirectoryObject,
    GroupRef,
    ObjectClass,
    ensure_mandatory_properties,
)

from .base import DirectoryAdapter

logger = logging.getLogger(__name__)

DEMO_BASE = "DC=demo,DC=local"


def _dn(name: str, ou: str) -> str:
    return f"CN={name},OU={ou},{DEMO_BASE}"


class DemoAdapter(DirectoryAdapter):
    """MongoDB-backed demo directory with nested role groups.

    ``objects`` holds users, devices and groups keyed by distinguished name;
    ``memberships`` holds one document per direct (group, member) edge.
    """

    def __init__(
        self,
        mongo_uri: str,
        db_name: str = "groupsync_demo",
        seed: bool = True,
    ) -> None:
        if not mongo_uri:
            raise ValueError("mongo_uri is required for DemoAdapter.")

        self._client = MongoClient(mongo_uri, appname="GroupSyncDemo")
        self._db = self._client[db_name]

        self._objects: Collection = self._db["objects"]
        self._memberships: Collection = self._db["memberships"]
        self._audit: Collection = self._db["audit"]

        self._ensure_indexes()
        if seed:
            self.seed_if_empty()

    def _ensure_indexes(self) -> None:
        index_specs = [
            (self._objects, [("name", ASCENDING)], {"name": "idx_objects_name"}),
            (self._objects, [("sAMAccountName", ASCENDING)], {"name": "idx_objects_sam"}),
            (self._objects, [("objectClass", ASCENDING)], {"name": "idx_objects_class"}),
            (
                self._memberships,
                [("groupDn", ASCENDING), ("memberDn", ASCENDING)],
                {"unique": True, "name": "idx_memberships_group_member"},
            ),
            (self._memberships, [("memberDn", ASCENDING)], {"name": "idx_memberships_member"}),
            (self._audit, [("ts", DESCENDING)], {"name": "idx_audit_ts"}),
        ]

        for collection, keys, options in index_specs:
            try:
                collection.create_index(keys, **options)
            except OperationFailure as exc:
                if exc.code == 85:  # IndexOptionsConflict
                    continue
                raise

    def seed_if_empty(self, force: bool = False) -> None:
        if force:
            for collection in (self._objects, self._memberships, self._audit):
                collection.delete_many({})

        if self._objects.count_documents({}) > 0:
            return

        people = [
            ("Alex Rivera", "alex.rivera", "Operations Manager"),
            ("Jane Doe", "jane.doe", "Production Engineer"),
            ("Sam Contractor", "sam.contractor", "Contract Technician"),
            ("Casey Lee", "casey.lee", "IT Systems Analyst"),
            ("Maria Gonzales", "maria.gonzales", "HSE Specialist"),
            ("Devon Price", "devon.price", "Pipeline Coordinator"),
        ]
        objects: List[Dict[str, Any]] = [
            {
                "_id": _dn(name, "People"),
                "name": name,
                "sAMAccountName": sam,
                "objectClass": "user",
                "title": title,
                "mail": f"{sam}@demo.local",
            }
            for name, sam, title in people
        ]
        objects.append(
            {
                "_id": _dn("PERMIAN-WS01", "Devices"),
                "name": "PERMIAN-WS01",
                "sAMAccountName": "PERMIAN-WS01$",
                "objectClass": "computer",
            }
        )
        groups = {
            "RG_Permian_Share": "Resources",
            "RG_Corporate_IT_Share": "Resources",
            "ROLE_Permian_Operators": "Roles",
            "ROLE_Permian_Engineers": "Roles",
            "ROLE_Contractors": "Roles",
        }
        for name, ou in groups.items():
            objects.append(
                {"_id": _dn(name, ou), "name": name, "sAMAccountName": name, "objectClass": "group"}
            )

        people_dn = {sam: _dn(name, "People") for name, sam, _ in people}
        edges = [
            # Resource group: nested role groups plus stale and missing direct members.
            ("RG_Permian_Share", _dn("ROLE_Permian_Operators", "Roles")),
            ("RG_Permian_Share", _dn("ROLE_Permian_Engineers", "Roles")),
            ("RG_Permian_Share", people_dn["alex.rivera"]),
            ("RG_Permian_Share", people_dn["casey.lee"]),
            ("ROLE_Permian_Operators", people_dn["alex.rivera"]),
            ("ROLE_Permian_Operators", people_dn["devon.price"]),
            ("ROLE_Permian_Operators", _dn("PERMIAN-WS01", "Devices")),
            ("ROLE_Permian_Engineers", people_dn["jane.doe"]),
            ("ROLE_Permian_Engineers", people_dn["devon.price"]),
            ("ROLE_Permian_Engineers", _dn("ROLE_Contractors", "Roles")),
            # Loop back to exercise the cycle guard.
            ("ROLE_Contractors", _dn("ROLE_Permian_Engineers", "Roles")),
            ("ROLE_Contractors", people_dn["sam.contractor"]),
            # Resource-only group: no nested group at all.
            ("RG_Corporate_IT_Share", people_dn["casey.lee"]),
            ("RG_Corporate_IT_Share", people_dn["maria.gonzales"]),
        ]

        now = dt.datetime.utcnow().isoformat()
        self._objects.insert_many(objects)
        self._memberships.insert_many(
            [
                {
                    "_id": f"m_{uuid.uuid4().hex}",
                    "groupDn": _dn(group, groups[group]),
                    "memberDn": member_dn,
                    "addedAt": now,
                }
                for group, member_dn in edges
            ]
        )

    def lookup_group(self, identity: str) -> GroupRef:
        query = {
            "objectClass": "group",
            "$or": [{"_id": identity}, {"name": identity}, {"sAMAccountName": identity}],
        }
        try:
            matches = list(self._objects.find(query, {"name": 1}))
        except ConnectionFailure as exc:
            raise DirectoryUnavailableError(str(exc)) from exc
        except PyMongoError as exc:
            raise DirectoryQueryError(f"Lookup of '{identity}' failed: {exc}") from exc
        if len(matches) != 1:
            raise GroupLookupError(identity, len(matches))
        doc = matches[0]
        return GroupRef(str(doc["_id"]), doc.get("name") or "")

    def list_direct_children(
        self,
        group_dn: str,
        include_groups: bool,
        properties: Sequence[str],
    ) -> List[DirectoryObject]:
        attributes = ensure_mandatory_properties(properties)
        try:
            member_dns = [
                edge.get("memberDn")
                for edge in self._memberships.find({"groupDn": group_dn}, {"memberDn": 1})
                if edge.get("memberDn")
            ]
            if not member_dns:
                return []
            criteria: Dict[str, Any] = {"_id": {"$in": member_dns}}
            if not include_groups:
                criteria["objectClass"] = {"$ne": "group"}
            docs = {doc["_id"]: doc for doc in self._objects.find(criteria)}
        except ConnectionFailure as exc:
            raise DirectoryUnavailableError(str(exc)) from exc
        except PyMongoError as exc:
            raise DirectoryQueryError(f"Member query under {group_dn} failed: {exc}") from exc

        children: List[DirectoryObject] = []
        for member_dn in member_dns:
            doc = docs.get(member_dn)
            if doc is None:
                continue
            children.append(self._to_directory_object(doc, attributes))
        return children

    def add_members(self, group_dn: str, members: Sequence[DirectoryObject]) -> None:
        self._require_group(group_dn)
        now = dt.datetime.utcnow().isoformat()
        try:
            for member in members:
                self._memberships.update_one(
                    {"groupDn": group_dn, "memberDn": member.distinguished_name},
                    {"$setOnInsert": {"_id": f"m_{uuid.uuid4().hex}", "addedAt": now}},
                    upsert=True,
                )
        except PyMongoError as exc:
            raise MutationError(str(exc)) from exc
        self._record_audit("ADD", group_dn, members)

    def remove_members(self, group_dn: str, members: Sequence[DirectoryObject]) -> None:
        self._require_group(group_dn)
        dns = [member.distinguished_name for member in members]
        try:
            self._memberships.delete_many({"groupDn": group_dn, "memberDn": {"$in": dns}})
        except PyMongoError as exc:
            raise MutationError(str(exc)) from exc
        self._record_audit("REMOVE", group_dn, members)

    def _require_group(self, group_dn: str) -> None:
        try:
            found = self._objects.find_one({"_id": group_dn, "objectClass": "group"}, {"_id": 1})
        except PyMongoError as exc:
            raise MutationError(str(exc)) from exc
        if not found:
            raise MutationError(f"Group {group_dn} does not exist.")

    def _record_audit(self, op: str, group_dn: str, members: Sequence[DirectoryObject]) -> None:
        audit_doc = {
            "_id": f"a_{uuid.uuid4().hex}",
            "ts": dt.datetime.utcnow().isoformat(),
            "op": op,
            "groupDn": group_dn,
            "members": [member.distinguished_name for member in members],
            "count": len(members),
        }
        try:
            self._audit.insert_one(audit_doc)
        except PyMongoError:
            # The membership change already happened.
            logger.warning("Could not record %s audit entry for %s", op, group_dn, exc_info=True)

    def audit(self, limit: int = 100) -> List[Dict[str, Any]]:
        cursor = self._audit.find().sort("ts", DESCENDING).limit(limit)
        return [
            {
                "id": doc.get("_id"),
                "ts": doc.get("ts"),
                "op": doc.get("op"),
                "groupDn": doc.get("groupDn"),
                "members": doc.get("members", []),
                "count": doc.get("count", 0),
            }
            for doc in cursor
        ]

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _to_directory_object(doc: Dict[str, Any], attributes: Sequence[str]) -> DirectoryObject:
        return DirectoryObject(
            distinguished_name=str(doc["_id"]),
            object_class=ObjectClass.from_directory(doc.get(CLASS_PROPERTY)),
            properties={
                name: doc.get(name)
                for name in attributes
                if name not in (DN_PROPERTY, CLASS_PROPERTY)
            },
        )

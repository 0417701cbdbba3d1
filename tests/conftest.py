import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep test runs from appending to the project log file.
os.environ.setdefault("LOG_FILE", "")

from groupsync.errors import GroupLookupError, MutationError  # noqa: E402
from groupsync.models import DirectoryObject, GroupRef, ObjectClass  # noqa: E402


def dn(name: str) -> str:
    return f"CN={name},DC=test,DC=local"


class InMemoryDirectory:
    """Directory fake honouring the DirectoryAdapter contract."""

    def __init__(self) -> None:
        self.objects: Dict[str, Dict[str, object]] = {}
        self.members: Dict[str, List[str]] = {}
        self.calls: List[tuple] = []
        self.fail_add: Optional[str] = None
        self.fail_remove: Optional[str] = None

    def add_user(self, name: str, **props) -> str:
        self.objects[dn(name)] = {"name": name, "objectClass": "user", **props}
        return dn(name)

    def add_group(self, name: str, *members: str) -> str:
        self.objects[dn(name)] = {"name": name, "objectClass": "group"}
        self.members.setdefault(dn(name), [])
        for member in members:
            self.link(name, member)
        return dn(name)

    def link(self, group: str, member: str) -> None:
        self.members.setdefault(dn(group), []).append(dn(member))

    def direct_names(self, group: str) -> List[str]:
        return sorted(self.objects[m]["name"] for m in self.members.get(dn(group), []))

    def lookup_group(self, identity: str) -> GroupRef:
        self.calls.append(("lookup_group", identity))
        matches = [
            key
            for key, obj in self.objects.items()
            if obj["objectClass"] == "group" and identity in (key, obj["name"])
        ]
        if len(matches) != 1:
            raise GroupLookupError(identity, len(matches))
        return GroupRef(matches[0], str(self.objects[matches[0]]["name"]))

    def list_direct_children(
        self, group_dn: str, include_groups: bool, properties: Sequence[str]
    ) -> List[DirectoryObject]:
        self.calls.append(("list_direct_children", group_dn, include_groups, tuple(properties)))
        if group_dn not in self.objects:
            raise GroupLookupError(group_dn, 0)
        children = []
        for member_dn in self.members.get(group_dn, []):
            obj = self.objects[member_dn]
            object_class = ObjectClass.from_directory(obj["objectClass"])
            if object_class is ObjectClass.GROUP and not include_groups:
                continue
            props = {
                p: obj.get(p)
                for p in properties
                if p not in ("distinguishedName", "objectClass")
            }
            children.append(DirectoryObject(member_dn, object_class, props))
        return children

    def add_members(self, group_dn: str, members: Sequence[DirectoryObject]) -> None:
        self.calls.append(("add_members", group_dn, [m.distinguished_name for m in members]))
        if self.fail_add:
            raise MutationError(self.fail_add)
        current = self.members.setdefault(group_dn, [])
        for member in members:
            if member.distinguished_name not in current:
                current.append(member.distinguished_name)

    def remove_members(self, group_dn: str, members: Sequence[DirectoryObject]) -> None:
        self.calls.append(("remove_members", group_dn, [m.distinguished_name for m in members]))
        if self.fail_remove:
            raise MutationError(self.fail_remove)
        drop = {m.distinguished_name for m in members}
        self.members[group_dn] = [m for m in self.members.get(group_dn, []) if m not in drop]

    def mutation_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("add_members", "remove_members")]


@pytest.fixture
def directory():
    return InMemoryDirectory()


@pytest.fixture
def role_hierarchy(directory):
    """RG_Share holds two role groups plus stale/missing direct members.

    Direct (non-group): a, b, c. Indirect via roles: b, c, d.
    """
    for name in ("a", "b", "c", "d"):
        directory.add_user(name, title=f"title-{name}")
    directory.add_group("ROLE_One", "b", "c")
    directory.add_group("ROLE_Two", "c", "d")
    directory.add_group("RG_Share", "ROLE_One", "ROLE_Two", "a", "b", "c")
    return directory

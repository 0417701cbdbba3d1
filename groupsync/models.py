from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

DN_PROPERTY = "distinguishedName"
CLASS_PROPERTY = "objectClass"
MANDATORY_PROPERTIES = (DN_PROPERTY, CLASS_PROPERTY)


class ObjectClass(str, enum.Enum):
    GROUP = "group"
    PRINCIPAL = "principal"

    @classmethod
    def from_directory(cls, raw: Any) -> "ObjectClass":
        """Map a directory objectClass value (string or multi-valued list) onto the enum."""
        if isinstance(raw, ObjectClass):
            return raw
        if isinstance(raw, (list, tuple, set)):
            values = {str(v).lower() for v in raw}
        else:
            values = {str(raw or "").lower()}
        return cls.GROUP if "group" in values else cls.PRINCIPAL


class SnapshotKind(str, enum.Enum):
    DIRECT = "Direct"
    INDIRECT = "Indirect"


@dataclass(frozen=True)
class GroupRef:
    distinguished_name: str
    name: str = ""

    @property
    def display(self) -> str:
        return self.name or self.distinguished_name


@dataclass(frozen=True)
class DirectoryObject:
    """A person, device or group as returned by a directory adapter.

    Identity is the distinguished name only; ``properties`` keeps the caller's
    requested display attributes in request order and never takes part in
    equality.
    """

    distinguished_name: str
    object_class: ObjectClass = field(default=ObjectClass.PRINCIPAL, compare=False)
    properties: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> str:
        return self.distinguished_name.lower()

    @property
    def is_group(self) -> bool:
        return self.object_class is ObjectClass.GROUP

    def get(self, name: str, default: Any = None) -> Any:
        if name == DN_PROPERTY:
            return self.distinguished_name
        if name == CLASS_PROPERTY:
            return self.object_class.value
        return self.properties.get(name, default)

    def as_group_ref(self) -> GroupRef:
        return GroupRef(self.distinguished_name, str(self.properties.get("name") or ""))


def ensure_mandatory_properties(properties: Optional[Iterable[str]]) -> List[str]:
    """Return ``properties`` with distinguishedName and objectClass guaranteed, order kept."""
    requested = [p for p in (properties or []) if p]
    seen = {p.lower() for p in requested}
    missing = [p for p in MANDATORY_PROPERTIES if p.lower() not in seen]
    return missing + requested


def dedupe_members(members: Iterable[DirectoryObject]) -> List[DirectoryObject]:
    seen = set()
    unique: List[DirectoryObject] = []
    for member in members:
        if member.key in seen:
            continue
        seen.add(member.key)
        unique.append(member)
    return unique


def _sort_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ";".join(str(v) for v in value).lower()
    return str(value).lower()


@dataclass
class MembershipSnapshot:
    group: GroupRef
    kind: SnapshotKind
    members: List[DirectoryObject] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        group: GroupRef,
        kind: SnapshotKind,
        members: Iterable[DirectoryObject],
        sort_properties: Sequence[str] = (),
    ) -> "MembershipSnapshot":
        """Deduplicate by distinguished name and order by ``sort_properties`` for display."""
        unique = dedupe_members(members)
        unique.sort(
            key=lambda m: tuple(_sort_value(m.get(p)) for p in sort_properties) + (m.key,)
        )
        return cls(group=group, kind=kind, members=unique)

    def __len__(self) -> int:
        return len(self.members)

    def __iter__(self):
        return iter(self.members)

    def __bool__(self) -> bool:
        return bool(self.members)

    def keys(self) -> List[str]:
        return [m.key for m in self.members]


@dataclass(frozen=True)
class ReconcilePolicy:
    skip_group_with_no_nested_group: bool = False
    skip_group_with_no_indirect_member: bool = False


@dataclass
class ReconcileOutcome:
    add_member: List[DirectoryObject] = field(default_factory=list)
    remove_member: List[DirectoryObject] = field(default_factory=list)
    member_inconsistent: bool = False
    member_group_found: bool = False
    skip_reason: Optional[str] = None


@dataclass
class ReconciliationResult:
    group: GroupRef
    direct_members: MembershipSnapshot
    indirect_members: MembershipSnapshot
    member_group_found: bool = False
    member_inconsistent: bool = False
    add_member: List[DirectoryObject] = field(default_factory=list)
    remove_member: List[DirectoryObject] = field(default_factory=list)
    add_member_error: Optional[str] = None
    remove_member_error: Optional[str] = None
    skip_reason: Optional[str] = None
    dry_run: bool = False

    @property
    def mode(self) -> str:
        return "DryRun" if self.dry_run else "Apply"

    @property
    def has_errors(self) -> bool:
        return bool(self.add_member_error or self.remove_member_error)

    @property
    def change_count(self) -> int:
        return len(self.add_member) + len(self.remove_member)


@dataclass(frozen=True)
class SkippedIdentity:
    identity: str
    reason: str


@dataclass
class ReconciliationRun:
    results: List[ReconciliationResult] = field(default_factory=list)
    skipped: List[SkippedIdentity] = field(default_factory=list)
    dry_run: bool = False

    @property
    def has_errors(self) -> bool:
        return any(result.has_errors for result in self.results)

from __future__ import annotations

from typing import List, Protocol, Sequence

from groupsync.models import DirectoryObject, GroupRef


class DirectoryAdapter(Protocol):
    """Common contract for directory backends consumed by the reconciliation core.

    ``lookup_group`` raises ``GroupLookupError`` when zero or several groups match,
    mutation calls raise ``MutationError`` when the directory rejects them and any
    call may raise ``DirectoryUnavailableError``.
    """

    def lookup_group(self, identity: str) -> GroupRef:
        ...

    def list_direct_children(
        self,
        group_dn: str,
        include_groups: bool,
        properties: Sequence[str],
    ) -> List[DirectoryObject]:
        ...

    def add_members(self, group_dn: str, members: Sequence[DirectoryObject]) -> None:
        ...

    def remove_members(self, group_dn: str, members: Sequence[DirectoryObject]) -> None:
        ...

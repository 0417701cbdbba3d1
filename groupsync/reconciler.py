from __future__ import annotations

import logging
from typing import Dict, Optional

from .models import DirectoryObject, MembershipSnapshot, ReconcileOutcome, ReconcilePolicy

logger = logging.getLogger(__name__)

SKIP_NO_NESTED_GROUP = "No nested group found and SkipGroupWithNoNestedGroup is set."
SKIP_NO_INDIRECT_MEMBER = "No indirect member found and SkipGroupWithNoIndirectMember is set."


class MembershipReconciler:
    """Turns a direct and an indirect snapshot into an add/remove change-set.

    Identity is the distinguished name (case-insensitive, as directories treat
    it); display properties and snapshot order never affect the outcome.
    """

    def __init__(self, policy: Optional[ReconcilePolicy] = None) -> None:
        self.policy = policy or ReconcilePolicy()

    def reconcile(
        self,
        direct: MembershipSnapshot,
        indirect: MembershipSnapshot,
        member_group_found: bool = False,
    ) -> ReconcileOutcome:
        outcome = ReconcileOutcome(member_group_found=member_group_found)

        if direct and indirect:
            direct_index = _index(direct)
            indirect_index = _index(indirect)
            outcome.add_member = [m for k, m in indirect_index.items() if k not in direct_index]
            outcome.remove_member = [m for k, m in direct_index.items() if k not in indirect_index]
            outcome.member_inconsistent = bool(outcome.add_member or outcome.remove_member)
        elif direct:
            skip_reason = self._removal_skip_reason(member_group_found)
            if skip_reason:
                logger.info("%s: %s", direct.group.display, skip_reason)
                outcome.skip_reason = skip_reason
            else:
                outcome.remove_member = list(direct.members)
                outcome.member_inconsistent = True
        elif indirect:
            outcome.add_member = list(indirect.members)
            outcome.member_inconsistent = True

        return outcome

    def _removal_skip_reason(self, member_group_found: bool) -> Optional[str]:
        if self.policy.skip_group_with_no_nested_group and not member_group_found:
            return SKIP_NO_NESTED_GROUP
        if self.policy.skip_group_with_no_indirect_member:
            return SKIP_NO_INDIRECT_MEMBER
        return None


def _index(snapshot: MembershipSnapshot) -> Dict[str, DirectoryObject]:
    index: Dict[str, DirectoryObject] = {}
    for member in snapshot.members:
        index.setdefault(member.key, member)
    return index

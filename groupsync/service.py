"""Batch driver: resolve, reconcile and apply for each group identity in order."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from adapters.base import DirectoryAdapter

from .applier import ChangeApplier
from .errors import DirectoryError, DirectoryUnavailableError
from .models import (
    GroupRef,
    MembershipSnapshot,
    ReconcilePolicy,
    ReconciliationResult,
    ReconciliationRun,
    SkippedIdentity,
    SnapshotKind,
)
from .reconciler import MembershipReconciler
from .resolver import MembershipResolver

logger = logging.getLogger(__name__)


class ReconciliationService:
    def __init__(
        self,
        adapter: DirectoryAdapter,
        properties: Optional[Sequence[str]] = None,
        policy: Optional[ReconcilePolicy] = None,
        dry_run: bool = False,
    ) -> None:
        self.resolver = MembershipResolver(adapter, properties)
        self.reconciler = MembershipReconciler(policy)
        self.applier = ChangeApplier(adapter, dry_run=dry_run)
        self.dry_run = dry_run
        self._adapter = adapter
        # Caller's order, used for display sorting only.
        self.sort_properties = [p for p in (properties or []) if p]

    def run(self, identities: Iterable[str]) -> ReconciliationRun:
        identities = [str(i).strip() for i in identities]
        if not identities or not all(identities):
            raise ValueError("At least one non-empty group identity is required.")

        run = ReconciliationRun(dry_run=self.dry_run)
        if self.dry_run:
            logger.info("Dry run: no change will be written to the directory.")

        for index, identity in enumerate(identities):
            try:
                group = self._adapter.lookup_group(identity)
            except DirectoryUnavailableError:
                if index == 0:
                    raise
                logger.warning("Directory unavailable, skipping '%s'", identity, exc_info=True)
                run.skipped.append(SkippedIdentity(identity, "Directory unavailable."))
                continue
            except DirectoryError as exc:
                logger.warning("Skipping '%s': %s", identity, exc)
                run.skipped.append(SkippedIdentity(identity, str(exc)))
                continue

            try:
                result = self.process_group(group)
            except DirectoryError as exc:
                logger.warning("Skipping %s: %s", group.display, exc)
                run.skipped.append(SkippedIdentity(identity, str(exc)))
                continue
            run.results.append(result)

        return run

    def snapshots(self, group: GroupRef):
        """Direct and indirect snapshots of ``group`` plus whether a nested group was found."""
        children = self.resolver.resolve_children(group)
        member_group_found = any(child.is_group for child in children)
        direct = MembershipSnapshot.build(
            group,
            SnapshotKind.DIRECT,
            (child for child in children if not child.is_group),
            self.sort_properties,
        )
        indirect = MembershipSnapshot.build(
            group,
            SnapshotKind.INDIRECT,
            self.resolver.resolve_indirect(group, children),
            self.sort_properties,
        )
        return direct, indirect, member_group_found

    def process_group(self, group: GroupRef) -> ReconciliationResult:
        logger.info("Processing %s", group.display)
        direct, indirect, member_group_found = self.snapshots(group)
        outcome = self.reconciler.reconcile(direct, indirect, member_group_found)

        result = ReconciliationResult(
            group=group,
            direct_members=direct,
            indirect_members=indirect,
            member_group_found=outcome.member_group_found,
            member_inconsistent=outcome.member_inconsistent,
            add_member=outcome.add_member,
            remove_member=outcome.remove_member,
            skip_reason=outcome.skip_reason,
            dry_run=self.dry_run,
        )
        logger.info(
            "%s: %d direct, %d indirect, %d to add, %d to remove",
            group.display,
            len(direct),
            len(indirect),
            len(result.add_member),
            len(result.remove_member),
        )

        result.add_member_error, result.remove_member_error = self.applier.apply(
            group, result.add_member, result.remove_member
        )
        return result

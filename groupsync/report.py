"""Structured, renderer-agnostic views of reconciliation results."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from .models import DirectoryObject, MembershipSnapshot, ReconciliationResult, ReconciliationRun


def member_to_dict(member: DirectoryObject) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "distinguishedName": member.distinguished_name,
        "objectClass": member.object_class.value,
    }
    for name, value in member.properties.items():
        payload.setdefault(name, value)
    return payload


def snapshot_to_list(snapshot: MembershipSnapshot) -> List[Dict[str, Any]]:
    return [member_to_dict(m) for m in snapshot.members]


def result_to_dict(result: ReconciliationResult) -> Dict[str, Any]:
    return {
        "group": {
            "distinguishedName": result.group.distinguished_name,
            "name": result.group.name,
        },
        "mode": result.mode,
        "directMembers": snapshot_to_list(result.direct_members),
        "indirectMembers": snapshot_to_list(result.indirect_members),
        "memberGroupFound": result.member_group_found,
        "memberInconsistent": result.member_inconsistent,
        "addMember": [member_to_dict(m) for m in result.add_member],
        "removeMember": [member_to_dict(m) for m in result.remove_member],
        "addMemberError": result.add_member_error,
        "removeMemberError": result.remove_member_error,
        "skipReason": result.skip_reason,
    }


def sort_by_interest(results: Iterable[ReconciliationResult]) -> List[ReconciliationResult]:
    """Groups with nested groups first, then inconsistent ones, then bigger change-sets."""
    return sorted(
        results,
        key=lambda r: (not r.member_group_found, not r.member_inconsistent, -r.change_count),
    )


def summarize(run: ReconciliationRun) -> Dict[str, int]:
    return {
        "processed": len(run.results),
        "skipped": len(run.skipped),
        "inconsistent": sum(1 for r in run.results if r.member_inconsistent),
        "toAdd": sum(len(r.add_member) for r in run.results),
        "toRemove": sum(len(r.remove_member) for r in run.results),
        "errors": sum(
            int(bool(r.add_member_error)) + int(bool(r.remove_member_error)) for r in run.results
        ),
    }


def run_to_dict(run: ReconciliationRun, sort: str = "") -> Dict[str, Any]:
    results = sort_by_interest(run.results) if sort == "interest" else run.results
    return {
        "dryRun": run.dry_run,
        "results": [result_to_dict(r) for r in results],
        "skipped": [{"identity": s.identity, "reason": s.reason} for s in run.skipped],
        "summary": summarize(run),
    }

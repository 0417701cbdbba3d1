from groupsync.models import (
    DirectoryObject,
    GroupRef,
    MembershipSnapshot,
    ReconciliationResult,
    ReconciliationRun,
    SkippedIdentity,
    SnapshotKind,
)
from groupsync.report import result_to_dict, run_to_dict, sort_by_interest, summarize


def _result(name, nested=False, inconsistent=False, adds=0, removes=0, add_error=None):
    group = GroupRef(f"CN={name},DC=test,DC=local", name)
    users = [DirectoryObject(f"CN={name}-u{i},DC=test,DC=local") for i in range(adds + removes)]
    return ReconciliationResult(
        group=group,
        direct_members=MembershipSnapshot(group, SnapshotKind.DIRECT),
        indirect_members=MembershipSnapshot(group, SnapshotKind.INDIRECT),
        member_group_found=nested,
        member_inconsistent=inconsistent,
        add_member=users[:adds],
        remove_member=users[adds:],
        add_member_error=add_error,
    )


def test_sort_by_interest():
    plain = _result("plain")
    small = _result("small", nested=True, inconsistent=True, adds=1)
    big = _result("big", nested=True, inconsistent=True, adds=2, removes=3)
    steady = _result("steady", nested=True)

    ordered = sort_by_interest([plain, steady, small, big])

    assert [r.group.name for r in ordered] == ["big", "small", "steady", "plain"]


def test_result_to_dict_keeps_property_order():
    group = GroupRef("CN=RG,DC=test,DC=local", "RG")
    member = DirectoryObject("CN=a,DC=test,DC=local", properties={"name": "a", "mail": "a@test"})
    result = ReconciliationResult(
        group=group,
        direct_members=MembershipSnapshot(group, SnapshotKind.DIRECT, [member]),
        indirect_members=MembershipSnapshot(group, SnapshotKind.INDIRECT),
        remove_member=[member],
        member_inconsistent=True,
        dry_run=True,
    )

    payload = result_to_dict(result)

    assert payload["mode"] == "DryRun"
    assert payload["group"] == {"distinguishedName": "CN=RG,DC=test,DC=local", "name": "RG"}
    assert list(payload["removeMember"][0]) == ["distinguishedName", "objectClass", "name", "mail"]
    assert payload["removeMember"][0]["objectClass"] == "principal"
    assert payload["addMember"] == []
    assert payload["addMemberError"] is None


def test_summarize_and_run_to_dict():
    run = ReconciliationRun(
        results=[
            _result("one", nested=True, inconsistent=True, adds=2, removes=1, add_error="denied"),
            _result("two"),
        ],
        skipped=[SkippedIdentity("ghost", "No group found for 'ghost'.")],
    )

    summary = summarize(run)
    payload = run_to_dict(run, sort="interest")

    assert summary == {
        "processed": 2,
        "skipped": 1,
        "inconsistent": 1,
        "toAdd": 2,
        "toRemove": 1,
        "errors": 1,
    }
    assert payload["skipped"] == [{"identity": "ghost", "reason": "No group found for 'ghost'."}]
    assert [r["group"]["name"] for r in payload["results"]] == ["one", "two"]
    assert run.has_errors is True

"""Reconcile resource groups against their nested role groups.

Usage examples:

    # Preview the change-set for two groups without touching the directory
    python scripts/run_reconciliation.py RG_Permian_Share RG_Corporate_IT_Share --dry-run

    # Apply against the demo directory, leaving resource-only groups alone
    python scripts/run_reconciliation.py RG_Permian_Share --mode demo --skip-group-with-no-nested-group
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from groupsync.config import MODES, load_settings  # noqa: E402
from groupsync.errors import DirectoryUnavailableError  # noqa: E402
from groupsync.log import configure_logging  # noqa: E402
from groupsync.models import ReconcilePolicy, ReconciliationResult, ReconciliationRun  # noqa: E402
from groupsync.report import run_to_dict, sort_by_interest, summarize  # noqa: E402
from groupsync.service import ReconciliationService  # noqa: E402

EXIT_OK = 0
EXIT_MUTATION_ERRORS = 1
EXIT_FATAL = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync direct group membership with the people reachable through nested role groups."
    )
    parser.add_argument("groups", nargs="+", help="Group identities (name, sAMAccountName or DN).")
    parser.add_argument(
        "--property",
        dest="properties",
        action="append",
        default=None,
        help="Member property to fetch and sort by (repeatable). Defaults to MEMBER_PROPERTIES.",
    )
    parser.add_argument(
        "--skip-group-with-no-nested-group",
        action="store_true",
        default=None,
        help="Leave groups without any nested group untouched.",
    )
    parser.add_argument(
        "--skip-group-with-no-indirect-member",
        action="store_true",
        default=None,
        help="Do not empty a group whose nested groups resolve to nobody.",
    )
    parser.add_argument("--dry-run", action="store_true", default=None, help="Compute changes only.")
    parser.add_argument("--mode", choices=MODES, default=None, help="Directory backend.")
    parser.add_argument("--json", action="store_true", help="Print the run as JSON.")
    parser.add_argument("--sort", choices=["input", "interest"], default="input", help="Result order.")
    return parser.parse_args(argv)


def _names(members) -> str:
    return ", ".join(m.get("name") or m.distinguished_name for m in members) or "-"


def print_result(result: ReconciliationResult) -> None:
    print(f"[{result.mode}] {result.group.display}")
    print(f"  Direct: {len(result.direct_members)}  Indirect: {len(result.indirect_members)}")
    print(f"  Nested group found: {result.member_group_found}  Inconsistent: {result.member_inconsistent}")
    if result.skip_reason:
        print(f"  Skipped: {result.skip_reason}")
    print(f"  Add: {len(result.add_member)} ({_names(result.add_member)})")
    if result.add_member_error:
        print(f"  Add error: {result.add_member_error}")
    print(f"  Remove: {len(result.remove_member)} ({_names(result.remove_member)})")
    if result.remove_member_error:
        print(f"  Remove error: {result.remove_member_error}")


def print_run(run: ReconciliationRun, sort: str) -> None:
    results = sort_by_interest(run.results) if sort == "interest" else run.results
    for result in results:
        print_result(result)
    for skipped in run.skipped:
        print(f"[Skipped] {skipped.identity}: {skipped.reason}")
    summary = summarize(run)
    print(
        "Processed: {processed}  Skipped: {skipped}  Inconsistent: {inconsistent}  "
        "To add: {toAdd}  To remove: {toRemove}  Errors: {errors}".format(**summary)
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_file)

    policy = ReconcilePolicy(
        skip_group_with_no_nested_group=(
            args.skip_group_with_no_nested_group
            if args.skip_group_with_no_nested_group is not None
            else settings.skip_group_with_no_nested_group
        ),
        skip_group_with_no_indirect_member=(
            args.skip_group_with_no_indirect_member
            if args.skip_group_with_no_indirect_member is not None
            else settings.skip_group_with_no_indirect_member
        ),
    )
    dry_run = args.dry_run if args.dry_run is not None else settings.dry_run

    try:
        adapter = settings.build_adapter(args.mode)
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_FATAL

    service = ReconciliationService(
        adapter,
        properties=args.properties or settings.member_properties,
        policy=policy,
        dry_run=dry_run,
    )
    try:
        run = service.run(args.groups)
    except DirectoryUnavailableError as exc:
        print(f"Directory unavailable: {exc}", file=sys.stderr)
        return EXIT_FATAL
    finally:
        close = getattr(adapter, "close", None)
        if callable(close):
            close()

    if args.json:
        print(json.dumps(run_to_dict(run, sort=args.sort), indent=2, default=str))
    else:
        print_run(run, args.sort)
    return EXIT_MUTATION_ERRORS if run.has_errors else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

import logging
import os
from typing import Dict

from flask import Flask, jsonify, request

from adapters.base import DirectoryAdapter
from groupsync.config import MODE_DEMO, MODE_STANDARD, MODES, load_settings, split_list
from groupsync.errors import DirectoryError, DirectoryUnavailableError, GroupLookupError
from groupsync.log import configure_logging
from groupsync.models import ReconcilePolicy
from groupsync.report import member_to_dict, run_to_dict
from groupsync.resolver import MembershipResolver
from groupsync.service import ReconciliationService

#python app.py
#curl -X POST http://127.0.0.1:5000/api/reconcile -H "Content-Type: application/json" -d '{"groups": ["RG_Permian_Share"], "dryRun": true}'

settings = load_settings()
configure_logging(settings.log_level, settings.log_file)
logger = logging.getLogger(__name__)

app = Flask(__name__)

_adapters: Dict[str, DirectoryAdapter] = {}


def _resolve_mode() -> str:
    mode = request.headers.get("X-Mode") or request.args.get("mode") or settings.default_mode
    mode = str(mode).lower()
    return mode if mode in MODES else settings.default_mode


def _get_adapter(mode: str) -> DirectoryAdapter:
    if mode not in _adapters:
        _adapters[mode] = settings.build_adapter(mode)
    return _adapters[mode]


def get_directory_adapter() -> DirectoryAdapter:
    mode = _resolve_mode()
    if mode == MODE_DEMO:
        try:
            return _get_adapter(MODE_DEMO)
        except ValueError as exc:
            logger.warning("Demo adapter unavailable (%s); defaulting to standard adapter.", exc)
    return _get_adapter(MODE_STANDARD)


def _flag(payload: dict, name: str, default: bool) -> bool:
    value = payload.get(name)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _properties(raw) -> list:
    if raw is None:
        return list(settings.member_properties)
    if isinstance(raw, str):
        return split_list(raw)
    return [str(p).strip() for p in raw if str(p).strip()]


@app.route('/api/groups/<path:identity>/members')
def api_group_members(identity):
    view = (request.args.get('view') or 'direct').lower()
    if view not in ('direct', 'indirect', 'recursive'):
        return jsonify({'error': "view must be one of: direct, indirect, recursive."}), 400

    try:
        adapter = get_directory_adapter()
        resolver = MembershipResolver(adapter, _properties(request.args.get('properties')))
        group = adapter.lookup_group(identity)
        if view == 'direct':
            members = resolver.resolve_direct(group)
        elif view == 'indirect':
            members = resolver.resolve_indirect(group)
        else:
            members = resolver.resolve_recursive(group)
    except GroupLookupError as exc:
        return jsonify({'error': str(exc)}), 404
    except (DirectoryUnavailableError, ValueError) as exc:
        return jsonify({'error': str(exc)}), 503
    except DirectoryError as exc:
        return jsonify({'error': str(exc)}), 500

    return jsonify({
        'group': {'distinguishedName': group.distinguished_name, 'name': group.name},
        'view': view,
        'members': [member_to_dict(m) for m in members],
    })


@app.route('/api/reconcile', methods=['POST'])
def api_reconcile():
    payload = request.get_json(force=True, silent=True) or {}
    groups = payload.get('groups')
    if isinstance(groups, str):
        groups = [groups]
    if not groups:
        return jsonify({'error': 'At least one group is required.'}), 400

    policy = ReconcilePolicy(
        skip_group_with_no_nested_group=_flag(
            payload, 'skipGroupWithNoNestedGroup', settings.skip_group_with_no_nested_group
        ),
        skip_group_with_no_indirect_member=_flag(
            payload, 'skipGroupWithNoIndirectMember', settings.skip_group_with_no_indirect_member
        ),
    )
    dry_run = _flag(payload, 'dryRun', settings.dry_run)

    try:
        adapter = get_directory_adapter()
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 503

    try:
        service = ReconciliationService(
            adapter,
            properties=_properties(payload.get('properties')),
            policy=policy,
            dry_run=dry_run,
        )
        run = service.run(groups)
    except DirectoryUnavailableError as exc:
        logger.error("Reconciliation aborted: %s", exc)
        return jsonify({'error': str(exc)}), 503
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400

    return jsonify(run_to_dict(run, sort=str(payload.get('sort') or '')))


@app.route('/api/audit')
def api_audit():
    try:
        adapter = get_directory_adapter()
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 503
    audit = getattr(adapter, 'audit', None)
    if not callable(audit):
        return jsonify({"error": "Not supported in current mode."}), 501
    try:
        limit = int(request.args.get('limit', 100))
    except ValueError:
        return jsonify({"error": "limit must be an integer."}), 400
    return jsonify(audit(limit))


@app.route('/api/logs')
def get_log_file():
    if not settings.log_file or not os.path.exists(settings.log_file):
        return "", 200
    with open(settings.log_file, "r", encoding="utf-8") as f:
        return f.read(), 200


if __name__ == '__main__':
    app.run(debug=True)

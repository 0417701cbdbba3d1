from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from ldap3 import ALL, BASE, MODIFY_ADD, MODIFY_DELETE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import RESULT_NO_SUCH_OBJECT, RESULT_SUCCESS
from ldap3.utils.conv import escape_filter_chars

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


class StandardAdapter(DirectoryAdapter):
    """Active Directory over LDAP.

    Direct children are found with a ``memberOf`` search rather than by reading
    the group's ``member`` attribute, so class filtering and the requested
    attributes come back in one paged query.
    """

    PAGE_SIZE = 500

    def __init__(
        self,
        server: str,
        username: Optional[str],
        password: Optional[str],
        search_base: str,
        use_ssl: bool = True,
    ) -> None:
        if not server:
            raise ValueError("server is required for StandardAdapter.")
        self._server_address = server
        self._username = username
        self._password = password
        self.search_base = search_base
        self._use_ssl = use_ssl
        self._connection: Optional[Connection] = None

    def _connect(self) -> Connection:
        if self._connection is not None and self._connection.bound:
            return self._connection
        try:
            server = Server(self._server_address, use_ssl=self._use_ssl, get_info=ALL)
            self._connection = Connection(
                server,
                user=self._username,
                password=self._password,
                auto_bind=True,
                raise_exceptions=False,
            )
        except LDAPException as exc:
            raise DirectoryUnavailableError(f"Could not connect to {self._server_address}: {exc}") from exc
        logger.info("Connected to %s", self._server_address)
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.unbind()
            except LDAPException:
                logger.debug("Unbind failed", exc_info=True)
            self._connection = None

    @staticmethod
    def _entries(response: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        return [item for item in (response or []) if item.get("type") == "searchResEntry"]

    @staticmethod
    def _is_dn(identity: str) -> bool:
        return "=" in identity and "," in identity

    def lookup_group(self, identity: str) -> GroupRef:
        conn = self._connect()
        try:
            if self._is_dn(identity):
                conn.search(
                    search_base=identity,
                    search_filter="(objectClass=group)",
                    search_scope=BASE,
                    attributes=[DN_PROPERTY, "name"],
                )
            else:
                value = escape_filter_chars(identity)
                conn.search(
                    search_base=self.search_base,
                    search_filter=f"(&(objectClass=group)(|(sAMAccountName={value})(cn={value})(name={value})))",
                    search_scope=SUBTREE,
                    attributes=[DN_PROPERTY, "name"],
                )
        except LDAPException as exc:
            raise DirectoryUnavailableError(str(exc)) from exc

        if _result_code(conn) == RESULT_NO_SUCH_OBJECT:
            raise GroupLookupError(identity, 0)
        _check_search(conn, f"Lookup of '{identity}'")

        entries = self._entries(conn.response)
        if len(entries) != 1:
            raise GroupLookupError(identity, len(entries))
        entry = entries[0]
        name = _single(entry.get("attributes", {}).get("name"))
        return GroupRef(entry["dn"], str(name or ""))

    def list_direct_children(
        self,
        group_dn: str,
        include_groups: bool,
        properties: Sequence[str],
    ) -> List[DirectoryObject]:
        attributes = ensure_mandatory_properties(properties)
        search_filter = f"(memberOf={escape_filter_chars(group_dn)})"
        if not include_groups:
            search_filter = f"(&{search_filter}(!(objectClass=group)))"

        conn = self._connect()
        try:
            response = conn.extend.standard.paged_search(
                search_base=self.search_base,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=attributes,
                paged_size=self.PAGE_SIZE,
                generator=False,
            )
        except LDAPException as exc:
            raise DirectoryUnavailableError(str(exc)) from exc
        # A failed page leaves a partial list behind.
        _check_search(conn, f"Member search under {group_dn}")

        children: List[DirectoryObject] = []
        for entry in self._entries(response):
            attrs = entry.get("attributes", {})
            object_class = ObjectClass.from_directory(attrs.get(CLASS_PROPERTY))
            if object_class is ObjectClass.GROUP and not include_groups:
                continue
            extra = {
                name: _single(attrs.get(name))
                for name in attributes
                if name not in (DN_PROPERTY, CLASS_PROPERTY)
            }
            children.append(DirectoryObject(entry["dn"], object_class, extra))
        return children

    def _modify_members(self, group_dn: str, members: Sequence[DirectoryObject], operation: str) -> None:
        dns = [member.distinguished_name for member in members]
        conn = self._connect()
        try:
            ok = conn.modify(group_dn, {"member": [(operation, dns)]})
        except LDAPException as exc:
            raise MutationError(str(exc)) from exc
        if not ok:
            result = conn.result or {}
            raise MutationError(
                f"{result.get('description', 'error')}: {result.get('message', '')}".strip(": ")
            )

    def add_members(self, group_dn: str, members: Sequence[DirectoryObject]) -> None:
        self._modify_members(group_dn, members, MODIFY_ADD)

    def remove_members(self, group_dn: str, members: Sequence[DirectoryObject]) -> None:
        self._modify_members(group_dn, members, MODIFY_DELETE)


def _result_code(conn: Connection) -> int:
    return (conn.result or {}).get("result", RESULT_SUCCESS)


def _check_search(conn: Connection, what: str) -> None:
    if _result_code(conn) == RESULT_SUCCESS:
        return
    result = conn.result or {}
    description = result.get("description", "error")
    message = result.get("message", "")
    logger.warning("%s failed: %s %s", what, description, message)
    raise DirectoryQueryError(f"{what} failed: {description}: {message}".strip(": "))


def _single(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        if len(value) == 1:
            return value[0]
        return list(value)
    return value

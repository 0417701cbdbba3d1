"""Group membership graph traversal.

Expands nested groups client-side instead of relying on directory-side
recursive queries, which are capped or slow on large hierarchies. Each
top-level call owns a fresh ``TraversalState``; nothing is cached across calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from adapters.base import DirectoryAdapter

from .models import DirectoryObject, GroupRef, ensure_mandatory_properties

logger = logging.getLogger(__name__)


@dataclass
class TraversalState:
    processed_groups: Set[str] = field(default_factory=set)
    seen_members: Set[str] = field(default_factory=set)


class MembershipResolver:
    def __init__(self, adapter: DirectoryAdapter, properties: Optional[Sequence[str]] = None) -> None:
        self._adapter = adapter
        self.properties = ensure_mandatory_properties(properties)

    def resolve_children(self, group: GroupRef) -> List[DirectoryObject]:
        """Immediate children of ``group`` including nested groups, in directory order."""
        return self._adapter.list_direct_children(
            group.distinguished_name, True, self.properties
        )

    def resolve_direct(self, group: GroupRef, include_groups: bool = False) -> List[DirectoryObject]:
        return self._adapter.list_direct_children(
            group.distinguished_name, include_groups, self.properties
        )

    def resolve_recursive(
        self,
        group: GroupRef,
        include_groups: bool = True,
        state: Optional[TraversalState] = None,
    ) -> List[DirectoryObject]:
        """Transitive closure under ``group``.

        Groups are always descended into; ``include_groups`` only controls whether
        they appear in the returned list. Each object is emitted at most once.
        """
        if state is None:
            state = TraversalState()
        result: List[DirectoryObject] = []
        self._walk([group], include_groups, state, result)
        return result

    def resolve_indirect(
        self,
        group: GroupRef,
        children: Optional[Sequence[DirectoryObject]] = None,
    ) -> List[DirectoryObject]:
        """Non-group objects reachable only through groups nested under ``group``.

        ``children`` may be passed when the caller already fetched the direct
        children, saving one directory query.
        """
        if children is None:
            children = self.resolve_children(group)
        nested = [child for child in children if child.is_group]
        if not nested:
            logger.debug("No nested group under %s", group.display)
            return []

        state = TraversalState()
        result: List[DirectoryObject] = []
        self._walk([child.as_group_ref() for child in nested], False, state, result)
        return result

    def _walk(
        self,
        seeds: Sequence[GroupRef],
        include_groups: bool,
        state: TraversalState,
        result: List[DirectoryObject],
    ) -> None:
        # Depth-first over an explicit stack, in the same order as a recursive walk.
        pending: List[GroupRef] = list(reversed(seeds))
        while pending:
            group = pending.pop()
            key = group.distinguished_name.lower()
            if key in state.processed_groups:
                logger.debug("Group %s already processed, not descending again", group.display)
                continue
            state.processed_groups.add(key)

            nested: List[GroupRef] = []
            for child in self.resolve_children(group):
                if child.is_group:
                    nested.append(child.as_group_ref())
                if child.key in state.seen_members:
                    continue
                state.seen_members.add(child.key)
                if child.is_group and not include_groups:
                    continue
                result.append(child)

            pending.extend(reversed(nested))

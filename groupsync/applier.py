from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from adapters.base import DirectoryAdapter

from .models import DirectoryObject, GroupRef

logger = logging.getLogger(__name__)


class ChangeApplier:
    """Pushes a change-set to the directory, capturing failures per operation.

    The add and the remove call are attempted independently; an exception from
    either becomes an error message instead of aborting the batch.
    """

    def __init__(self, adapter: DirectoryAdapter, dry_run: bool = False) -> None:
        self._adapter = adapter
        self.dry_run = dry_run

    def apply(
        self,
        group: GroupRef,
        add_member: Sequence[DirectoryObject],
        remove_member: Sequence[DirectoryObject],
    ) -> Tuple[Optional[str], Optional[str]]:
        if self.dry_run:
            if add_member or remove_member:
                logger.info(
                    "[DryRun] %s: would add %d and remove %d member(s)",
                    group.display,
                    len(add_member),
                    len(remove_member),
                )
            return None, None

        add_error: Optional[str] = None
        remove_error: Optional[str] = None

        if add_member:
            try:
                self._adapter.add_members(group.distinguished_name, list(add_member))
                logger.info("%s: added %d member(s)", group.display, len(add_member))
            except Exception as exc:
                add_error = str(exc) or exc.__class__.__name__
                logger.error("%s: adding members failed: %s", group.display, add_error)

        if remove_member:
            try:
                self._adapter.remove_members(group.distinguished_name, list(remove_member))
                logger.info("%s: removed %d member(s)", group.display, len(remove_member))
            except Exception as exc:
                remove_error = str(exc) or exc.__class__.__name__
                logger.error("%s: removing members failed: %s", group.display, remove_error)

        return add_error, remove_error

"""
System checks — read-only precondition queries.

Uses os.stat, shutil.which and the group database (grp / pwd). Nothing
here changes system state.
"""

from __future__ import annotations

import errno
import grp
import logging
import os
import pwd
import shutil

from provisioner.adapters.base import ExistenceCheck, GuardCheckError

logger = logging.getLogger(__name__)

# stat errors that simply mean "not there"
_ABSENT_ERRNOS = {errno.ENOENT, errno.ENOTDIR, errno.ENAMETOOLONG, errno.ELOOP}


class SystemChecks(ExistenceCheck):
    """ExistenceCheck backed by the local system."""

    def file_exists(self, path: str) -> bool:
        try:
            os.stat(os.path.expanduser(path))
        except OSError as e:
            if e.errno in _ABSENT_ERRNOS:
                return False
            raise GuardCheckError(f"Cannot check {path}: {e.strerror or e}") from e
        return True

    def command_exists(self, name: str, search_path: str | None = None) -> bool:
        return shutil.which(name, path=search_path) is not None

    def is_group_member(self, user: str, group: str) -> bool:
        try:
            entry = grp.getgrnam(group)
        except KeyError:
            logger.debug("Group %s does not exist", group)
            return False
        if user in entry.gr_mem:
            return True
        try:
            return pwd.getpwnam(user).pw_gid == entry.gr_gid
        except KeyError:
            logger.debug("User %s does not exist", user)
            return False

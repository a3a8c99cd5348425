"""Filesystem helpers for pteroprovision."""

import grp
import logging
import os
import pwd
import stat
import tempfile
from typing import Iterable, List

from rich.console import Console

from pteroprovision.constants import FILE_MODE
from pteroprovision.errors import ProvisionError


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: str, mode: int):
        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def chown_tree(self, root: str, user: str):
        """Recursively hands ``root`` to ``user`` and that user's primary group."""
        try:
            entry = pwd.getpwnam(user)
        except KeyError as exc:
            raise ProvisionError(f"System account '{user}' does not exist.") from exc

        uid, gid = entry.pw_uid, entry.pw_gid
        try:
            os.lchown(root, uid, gid)
            for current_root, dirs, files in os.walk(root):
                for name in dirs + files:
                    os.lchown(os.path.join(current_root, name), uid, gid)
        except OSError as exc:
            raise ProvisionError(f"Could not change ownership of {root} to {user}: {exc}") from exc
        self.logger.debug("Ownership of %s set to %s", root, user)

    def write_file(self, path: str, content: str, mode: int = FILE_MODE):
        """Writes ``content`` atomically so readers never see a partial file."""
        directory = os.path.dirname(path) or "."
        os.makedirs(directory, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(prefix=".pteroprovision-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(content)
            os.chmod(temp_path, mode)
            os.replace(temp_path, path)
        except OSError as exc:
            raise ProvisionError(f"Could not write {path}: {exc}") from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError:
                    pass
        self.logger.debug("Wrote %s (mode %o)", path, mode)

    def symlink(self, target: str, link_path: str):
        if os.path.islink(link_path) or os.path.exists(link_path):
            os.remove(link_path)
        os.symlink(target, link_path)

    def remove_file(self, path: str) -> bool:
        if not (os.path.islink(path) or os.path.exists(path)):
            return False
        os.remove(path)
        self.logger.info("Removed %s", path)
        return True

    def describe_ownership(self, paths: Iterable[str]) -> List[str]:
        """Returns ``owner:group mode path`` lines for permission debugging."""
        lines = []
        for path in paths:
            try:
                info = os.lstat(path)
            except OSError:
                lines.append(f"(missing) {path}")
                continue
            lines.append(
                f"{self._user_name(info.st_uid)}:{self._group_name(info.st_gid)} "
                f"{stat.filemode(info.st_mode)} {path}"
            )
        return lines

    @staticmethod
    def _user_name(uid: int) -> str:
        try:
            return pwd.getpwuid(uid).pw_name
        except KeyError:
            return str(uid)

    @staticmethod
    def _group_name(gid: int) -> str:
        try:
            return grp.getgrgid(gid).gr_name
        except KeyError:
            return str(gid)

"""Archive extraction helpers for pteroprovision."""

import os
import shutil
import tarfile
from pathlib import Path
from typing import Optional

from pteroprovision.errors import ProvisionError


class ArchiveService:
    """Encapsulates safe archive extraction logic."""

    def __init__(self, logger=None):
        self.logger = logger

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    def safe_extract_tar(self, tar_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()
        base.mkdir(parents=True, exist_ok=True)

        try:
            with tarfile.open(tar_path, "r:*") as tar_ref:
                members = tar_ref.getmembers()
                for member in members:
                    target_path = (base / member.name).resolve()
                    if not self.is_within_dir(base, target_path):
                        raise ProvisionError(
                            f"Unsafe archive entry detected: `{member.name}`. "
                            "Archive extraction aborted to prevent path traversal."
                        )

                    if member.issym() or member.islnk():
                        link_base = target_path.parent if member.issym() else base
                        link_target = (link_base / member.linkname).resolve()
                        if not self.is_within_dir(base, link_target):
                            raise ProvisionError(
                                f"Unsafe archive entry detected: `{member.name}` links outside "
                                "the extraction directory."
                            )

                    if member.isdev():
                        raise ProvisionError(
                            f"Unsafe archive entry detected: `{member.name}` is a device file."
                        )

                if hasattr(tarfile, "data_filter"):
                    tar_ref.extractall(base, members=members, filter="data")
                else:
                    tar_ref.extractall(base, members=members)
        except (tarfile.TarError, EOFError) as exc:
            raise ProvisionError(f"Invalid archive: {tar_path}: {exc}") from exc

    def flatten_wrapper_dir(self, root: str, marker: str) -> Optional[str]:
        """Moves the contents of a single wrapper directory up into ``root``.

        Returns the name of the flattened directory, or None when the archive
        already had its entries at the top level.
        """
        if os.path.exists(os.path.join(root, marker)):
            return None

        items = [item for item in os.listdir(root) if not item.startswith(".")]
        if len(items) != 1:
            return None

        wrapper = os.path.join(root, items[0])
        if not os.path.isdir(wrapper) or not os.path.exists(os.path.join(wrapper, marker)):
            return None

        if self.logger:
            self.logger.info("Detected wrapper directory '%s'. Flattening structure...", items[0])

        for sub_item in os.listdir(wrapper):
            src_path = os.path.join(wrapper, sub_item)
            dst_path = os.path.join(root, sub_item)
            if os.path.exists(dst_path):
                raise ProvisionError(
                    f"Cannot flatten archive: '{sub_item}' exists both inside and beside '{items[0]}'."
                )
            shutil.move(src_path, dst_path)
        os.rmdir(wrapper)
        return items[0]

"""Enumerate local deployment trees."""
import logging
import os
from typing import Dict, FrozenSet, List, Sequence

from dreamhost_deployer.core.models import TransferSet, PreviewEntry
from dreamhost_deployer.utils.exclusion import should_exclude
from dreamhost_deployer.utils.path_utils import parent_directories

logger = logging.getLogger(__name__)


def _scan_sorted(directory: str) -> List[os.DirEntry]:
    with os.scandir(directory) as entries:
        return sorted(entries, key=lambda entry: entry.name)


def _is_loop(entry: os.DirEntry, relative_path: str, ancestors: FrozenSet[str]) -> bool:
    """True when a symlinked directory points back at one of its ancestors."""
    if os.path.realpath(entry.path) in ancestors:
        logger.warning(f"Skipping symlink loop: {relative_path}")
        return True
    return False


def walk(root_dir: str, patterns: Sequence[str]) -> TransferSet:
    """
    Compute the transfer set for a local directory.

    Entries are visited depth-first in name order. Excluded directories
    are pruned without being read. Symlinked directories are followed
    unless they lead back to an ancestor.

    Args:
        root_dir: Local directory to deploy
        patterns: Exclude patterns

    Returns:
        TransferSet with files and the directories they need remotely

    Raises:
        OSError: If root_dir does not exist or cannot be read
    """
    files: List[str] = []
    directories: Dict[str, None] = {}

    def traverse(current_dir: str, relative_dir: str, ancestors: FrozenSet[str]) -> None:
        for entry in _scan_sorted(current_dir):
            relative_path = f"{relative_dir}/{entry.name}" if relative_dir else entry.name
            if should_exclude(relative_path, entry.name, patterns):
                continue
            if entry.is_dir():
                if not _is_loop(entry, relative_path, ancestors):
                    traverse(entry.path, relative_path, ancestors | {os.path.realpath(entry.path)})
            else:
                files.append(relative_path)
                for parent in parent_directories(relative_path):
                    directories.setdefault(parent, None)

    traverse(root_dir, '', frozenset([os.path.realpath(root_dir)]))
    return TransferSet(files=tuple(files), directories=tuple(directories))


def preview(root_dir: str, patterns: Sequence[str]) -> List[PreviewEntry]:
    """
    List what a deployment would do, marking excluded entries.

    Excluded directories appear once and are not descended into.
    """
    listing: List[PreviewEntry] = []

    def traverse(current_dir: str, relative_dir: str, ancestors: FrozenSet[str]) -> None:
        for entry in _scan_sorted(current_dir):
            relative_path = f"{relative_dir}/{entry.name}" if relative_dir else entry.name
            if should_exclude(relative_path, entry.name, patterns):
                listing.append(PreviewEntry('EXCLUDED', relative_path))
                continue
            if entry.is_dir():
                if _is_loop(entry, relative_path, ancestors):
                    continue
                listing.append(PreviewEntry('DIR', relative_path + '/'))
                traverse(entry.path, relative_path, ancestors | {os.path.realpath(entry.path)})
            else:
                listing.append(PreviewEntry('FILE', relative_path))

    traverse(root_dir, '', frozenset([os.path.realpath(root_dir)]))
    return listing

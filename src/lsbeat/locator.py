"""Discovery of marker directories under the scan roots."""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from .models import MarkerKind, ScanTarget, utcnow

logger = logging.getLogger(__name__)


def full_scan(
    roots: Iterable[Union[str, Path]],
    kind: MarkerKind,
    marker_name: Optional[str] = None,
    follow_symlinks: bool = False,
) -> List[ScanTarget]:
    """
    Walk every root and return the marker directories found.

    When a directory has a child named exactly ``marker_name``, that child
    is returned and nothing below the directory is searched any further.
    Subtrees that cannot be read are skipped.

    Args:
        roots: Directories to walk
        kind: Marker kind the targets are tagged with
        marker_name: Directory name to match (defaults to the kind's marker)
        follow_symlinks: Whether to descend into symlinked directories

    Returns:
        Targets sorted by path, without duplicates
    """
    marker_name = marker_name or kind.marker
    found = set()

    def on_error(err: OSError) -> None:
        logger.warning(f"Skipping unreadable directory {err.filename}: {err.strerror}")

    for root in roots:
        root = os.path.abspath(os.fspath(root))
        if not os.path.isdir(root):
            logger.warning(f"Scan root does not exist or is not a directory: {root}")
            continue

        for dirpath, dirnames, _ in os.walk(root, onerror=on_error, followlinks=follow_symlinks):
            if marker_name in dirnames:
                found.add(os.path.join(dirpath, marker_name))
                dirnames[:] = []

    targets = [ScanTarget(path, kind) for path in sorted(found)]
    logger.info(f"Full scan found {len(targets)} '{marker_name}' directories")
    return targets


def prune(targets: Iterable[ScanTarget]) -> List[ScanTarget]:
    """Drop targets whose directory no longer exists."""
    kept = []
    for target in targets:
        if os.path.isdir(target.directory_path):
            kept.append(target)
        else:
            logger.info(f"Marker directory disappeared: {target.directory_path}")
    return kept


class DirectoryLocator:
    """
    Cached marker-directory discovery with a periodic full rescan.

    Full scans walk whole trees, so they run only every
    ``full_rescan_every`` refreshes; in between, the cached targets are
    pruned of directories that no longer exist. New marker directories are
    not seen until the next full scan.
    """

    def __init__(
        self,
        roots: Iterable[Union[str, Path]],
        full_rescan_every: int = 6,
        follow_symlinks: bool = False,
    ):
        if full_rescan_every < 1:
            raise ValueError(f"full_rescan_every must be >= 1: {full_rescan_every}")
        self.roots = [Path(r) for r in roots]
        self.full_rescan_every = full_rescan_every
        self.follow_symlinks = follow_symlinks

        self._cycles = 0
        self._list_targets: List[ScanTarget] = []
        self._log_targets: List[ScanTarget] = []
        self.last_full_scan: Optional[datetime] = None

    @property
    def targets(self) -> Tuple[List[ScanTarget], List[ScanTarget]]:
        return list(self._list_targets), list(self._log_targets)

    def rescan(self) -> Tuple[List[ScanTarget], List[ScanTarget]]:
        """Run a full scan for both marker kinds and replace the cache."""
        self._list_targets = full_scan(self.roots, MarkerKind.LIST, follow_symlinks=self.follow_symlinks)
        self._log_targets = full_scan(self.roots, MarkerKind.LOG, follow_symlinks=self.follow_symlinks)
        self.last_full_scan = utcnow()
        self._cycles = 0
        return self.targets

    def refresh(self, force: bool = False) -> Tuple[List[ScanTarget], List[ScanTarget]]:
        """
        Advance one cycle and return the ``(list, log)`` targets to process.

        The first refresh always performs a full scan.
        """
        self._cycles += 1
        if force or self.last_full_scan is None or self._cycles >= self.full_rescan_every:
            return self.rescan()

        self._list_targets = prune(self._list_targets)
        self._log_targets = prune(self._log_targets)
        return self.targets

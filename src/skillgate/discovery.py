from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable

from .logging import get_logger
from .schema import (
    ROOT_BUNDLED,
    SKILL_FILENAME,
    DiscoveryWarning,
    SkillSource,
    normalize_path,
)

logger = get_logger(__name__)

ROOT_MISSING = "root_missing"
ROOT_UNREADABLE = "root_unreadable"
ROOT_NOT_DIR = "root_not_dir"
ROOT_DUPLICATE = "root_duplicate"
CYCLE_SKIPPED = "cycle_skipped"


@dataclass(frozen=True)
class DiscoveryResult:
    sources: tuple[SkillSource, ...]
    warnings: tuple[DiscoveryWarning, ...]


def _has_manifest(directory: str) -> bool:
    try:
        return os.path.isfile(os.path.join(directory, SKILL_FILENAME))
    except OSError:
        return False


class _Walk:
    def __init__(self) -> None:
        self.sources: list[SkillSource] = []
        self.warnings: list[DiscoveryWarning] = []
        self.visited_roots: set[str] = set()
        self.visited_packages: set[str] = set()

    def warn(self, location: str, reason: str, detail: str = "") -> None:
        logger.warning("skill discovery: %s (%s) %s", location, reason, detail)
        self.warnings.append(DiscoveryWarning(location=location, reason=reason, detail=detail))

    def add_package(self, path: str, root: SkillSource, *, via_symlink: bool) -> None:
        canonical = normalize_path(path)
        if canonical in self.visited_packages:
            if via_symlink:
                self.warn(path, CYCLE_SKIPPED, f"already visited as {canonical}")
            else:
                logger.debug("skill package %s already discovered", canonical)
            return
        self.visited_packages.add(canonical)
        self.sources.append(SkillSource(root_kind=root.root_kind, absolute_path=os.path.abspath(path), plugin_id=root.plugin_id))

    def collect(self, root: SkillSource) -> None:
        root_path = os.path.abspath(os.path.expanduser(str(root.absolute_path)))
        canonical_root = normalize_path(root_path)
        if canonical_root in self.visited_roots:
            self.warn(root_path, ROOT_DUPLICATE)
            return

        try:
            is_dir = os.path.isdir(root_path)
            exists = is_dir or os.path.exists(root_path)
        except OSError as exc:
            self.warn(root_path, ROOT_UNREADABLE, str(exc))
            return
        if not exists:
            self.warn(root_path, ROOT_MISSING)
            return
        if not is_dir:
            self.warn(root_path, ROOT_NOT_DIR)
            return
        self.visited_roots.add(canonical_root)

        if _has_manifest(root_path):
            self.add_package(root_path, root, via_symlink=False)

        try:
            with os.scandir(root_path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            self.warn(root_path, ROOT_UNREADABLE, str(exc))
            return

        candidates: list[tuple[bool, os.DirEntry]] = []
        for entry in entries:
            if entry.name.startswith((".", "_")):
                continue
            try:
                if entry.is_dir(follow_symlinks=True):
                    candidates.append((entry.is_symlink(), entry))
            except OSError:
                continue

        # real directories claim a package before any symlink alias does
        for via_symlink, entry in sorted(candidates, key=lambda item: item[0]):
            if via_symlink and normalize_path(entry.path) in self.visited_roots:
                self.warn(entry.path, CYCLE_SKIPPED, "symlink points at a skill root")
                continue
            if not _has_manifest(entry.path):
                continue
            self.add_package(entry.path, root, via_symlink=via_symlink)


def discover(roots: Iterable[SkillSource], plugin_roots: Iterable[SkillSource] = ()) -> DiscoveryResult:
    """Find skill package directories, bundled roots first, then plugin roots in order.

    Each root is scanned one level deep. Missing or unreadable roots become
    warnings; a package reachable twice (overlapping roots, symlinks) is
    returned once.
    """
    walk = _Walk()
    for root in list(roots) + list(plugin_roots):
        walk.collect(root)
    logger.debug("discovered %d skill package(s), %d warning(s)", len(walk.sources), len(walk.warnings))
    return DiscoveryResult(sources=tuple(walk.sources), warnings=tuple(walk.warnings))


def bundled_roots(paths: Iterable[str]) -> list[SkillSource]:
    return [SkillSource(root_kind=ROOT_BUNDLED, absolute_path=str(p)) for p in paths if str(p or "").strip()]

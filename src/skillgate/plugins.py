from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .logging import get_logger
from .schema import ROOT_PLUGIN, DiscoveryWarning, SkillSource, normalize_path

logger = get_logger(__name__)

PLUGIN_MANIFEST_FILENAME = "skillgate.plugin.json"
PLUGIN_MANIFEST_INVALID = "plugin_manifest_invalid"


@dataclass(frozen=True)
class PluginManifest:
    name: str
    enabled: bool
    skills_dirs: tuple[str, ...]
    requires_config: tuple[str, ...]
    path: str


def is_truthy_path(root: Mapping[str, Any], dotted_path: str) -> bool:
    segments = [part.strip() for part in str(dotted_path or "").split(".") if part.strip()]
    if not segments:
        return False
    current: Any = root
    for segment in segments:
        if not isinstance(current, Mapping):
            return False
        current = current.get(segment)
    return bool(current)


def read_plugin_manifest(path: str) -> tuple[PluginManifest | None, str | None]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, UnicodeDecodeError) as exc:
        return None, f"read_failed:{exc}"
    except json.JSONDecodeError as exc:
        return None, f"json_invalid:{exc}"
    if not isinstance(data, dict):
        return None, "manifest_not_object"

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        return None, "name_missing"

    raw_dirs = data.get("skillsDirs")
    if not isinstance(raw_dirs, list) or not raw_dirs:
        return None, "skills_dirs_missing"
    skills_dirs = tuple(d.strip() for d in raw_dirs if isinstance(d, str) and d.strip())
    if not skills_dirs:
        return None, "skills_dirs_empty"

    raw_requires = data.get("requiresConfig")
    requires = ()
    if isinstance(raw_requires, list):
        requires = tuple(r.strip() for r in raw_requires if isinstance(r, str) and r.strip())

    manifest = PluginManifest(
        name=name.strip(),
        enabled=data.get("enabled") is not False,
        skills_dirs=skills_dirs,
        requires_config=requires,
        path=path,
    )
    return manifest, None


def _manifest_paths(plugin_dir: str) -> list[str]:
    found: list[str] = []
    root_manifest = os.path.join(plugin_dir, PLUGIN_MANIFEST_FILENAME)
    if os.path.isfile(root_manifest):
        found.append(root_manifest)
    try:
        with os.scandir(plugin_dir) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError:
        return found
    for entry in entries:
        try:
            if not entry.is_dir():
                continue
        except OSError:
            continue
        nested = os.path.join(entry.path, PLUGIN_MANIFEST_FILENAME)
        if os.path.isfile(nested):
            found.append(nested)
    return found


def discover_plugin_roots(
    plugin_dirs: Iterable[str],
    settings: Mapping[str, Any] | None = None,
) -> tuple[list[SkillSource], list[DiscoveryWarning]]:
    """Turn plugin manifests into plugin skill roots, in the order supplied."""
    settings = settings or {}
    roots: list[SkillSource] = []
    warnings: list[DiscoveryWarning] = []
    seen: set[str] = set()

    for plugin_dir in plugin_dirs:
        plugin_dir = os.path.abspath(os.path.expanduser(str(plugin_dir)))
        for manifest_path in _manifest_paths(plugin_dir):
            manifest, error = read_plugin_manifest(manifest_path)
            if manifest is None:
                logger.warning("invalid plugin manifest %s: %s", manifest_path, error)
                warnings.append(DiscoveryWarning(location=manifest_path, reason=PLUGIN_MANIFEST_INVALID, detail=str(error)))
                continue
            if not manifest.enabled:
                logger.debug("plugin %s disabled", manifest.name)
                continue
            missing = [p for p in manifest.requires_config if not is_truthy_path(settings, p)]
            if missing:
                logger.debug("plugin %s skipped, missing config %s", manifest.name, ",".join(missing))
                continue
            base = os.path.dirname(manifest_path)
            for rel in manifest.skills_dirs:
                resolved = os.path.abspath(os.path.join(base, rel))
                key = normalize_path(resolved)
                if key in seen:
                    continue
                seen.add(key)
                roots.append(SkillSource(root_kind=ROOT_PLUGIN, absolute_path=resolved, plugin_id=manifest.name))
    return roots, warnings

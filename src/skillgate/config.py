from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parents[2] / "config" / "settings.yaml"
DEFAULT_INSTALL_STATE_FILENAME = ".skillgate-installs.json"


def resolve_profile(profile: str | None = None) -> str:
    env_profile = os.getenv("SKILLGATE_PROFILE")
    return profile or env_profile or "default"


def load_settings(profile: str | None = None, settings_path: str | Path | None = None) -> dict[str, Any]:
    path = Path(settings_path) if settings_path else DEFAULT_SETTINGS_PATH
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    profiles = data.get("profiles", {})
    resolved = resolve_profile(profile)
    if resolved not in profiles:
        raise KeyError(f"Profile '{resolved}' not found in {path}")
    return profiles[resolved] or {}


def _read_env_bool(*keys: str, default: bool) -> bool:
    for key in keys:
        raw = os.getenv(key)
        if raw is None:
            continue
        val = str(raw).strip().lower()
        if val in {"1", "true", "yes", "y", "on"}:
            return True
        if val in {"0", "false", "no", "n", "off"}:
            return False
    return bool(default)


def _read_env_int(*keys: str, default: int | None, min_value: int, max_value: int) -> int | None:
    for key in keys:
        raw = os.getenv(key)
        if raw is None:
            continue
        try:
            val = int(str(raw).strip())
        except ValueError:
            continue
        return max(int(min_value), min(int(max_value), int(val)))
    return default


def _read_env_list(*keys: str) -> tuple[str, ...]:
    for key in keys:
        raw = os.getenv(key)
        if raw is None:
            continue
        return tuple(part.strip() for part in str(raw).split(os.pathsep) if part.strip())
    return ()


def _coerce_list(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item).strip() for item in value if str(item or "").strip())


def _coerce_int(value: Any, *, default: int | None, min_value: int, max_value: int) -> int | None:
    if value is None:
        return default
    try:
        out = int(value)
    except (TypeError, ValueError):
        return default
    return max(int(min_value), min(int(max_value), out))


@dataclass(frozen=True)
class SkillsConfig:
    bundled_dirs: tuple[str, ...] = ()
    plugin_dirs: tuple[str, ...] = ()
    extra_plugin_skill_dirs: tuple[str, ...] = ()
    disabled: frozenset[str] = frozenset()
    max_active: int | None = None
    max_body_chars_per_skill: int = 6000
    max_body_chars_total: int = 15000
    strict: bool = False
    install_state_filename: str = DEFAULT_INSTALL_STATE_FILENAME

    @staticmethod
    def from_env() -> "SkillsConfig":
        return SkillsConfig(
            bundled_dirs=_read_env_list("SKILLGATE_BUNDLED_DIRS"),
            plugin_dirs=_read_env_list("SKILLGATE_PLUGIN_DIRS"),
            extra_plugin_skill_dirs=_read_env_list("SKILLGATE_PLUGIN_SKILL_DIRS"),
            disabled=frozenset(s.lower() for s in _read_env_list("SKILLGATE_DISABLED")),
            max_active=_read_env_int("SKILLGATE_MAX_ACTIVE", default=None, min_value=1, max_value=64),
            max_body_chars_per_skill=int(
                _read_env_int("SKILLGATE_MAX_BODY_CHARS", default=6000, min_value=256, max_value=200_000) or 6000
            ),
            max_body_chars_total=int(
                _read_env_int("SKILLGATE_MAX_BODY_CHARS_TOTAL", default=15000, min_value=256, max_value=1_000_000) or 15000
            ),
            strict=_read_env_bool("SKILLGATE_STRICT", default=False),
        )

    @staticmethod
    def from_settings(settings: Mapping[str, Any]) -> "SkillsConfig":
        skills = settings.get("skills", settings) if isinstance(settings, Mapping) else {}
        if not isinstance(skills, Mapping):
            skills = {}
        return SkillsConfig(
            bundled_dirs=_coerce_list(skills.get("bundled_dirs")),
            plugin_dirs=_coerce_list(skills.get("plugin_dirs")),
            extra_plugin_skill_dirs=_coerce_list(skills.get("plugin_skill_dirs")),
            disabled=frozenset(s.lower() for s in _coerce_list(skills.get("disabled"))),
            max_active=_coerce_int(skills.get("max_active"), default=None, min_value=1, max_value=64),
            max_body_chars_per_skill=int(
                _coerce_int(skills.get("max_body_chars_per_skill"), default=6000, min_value=256, max_value=200_000) or 6000
            ),
            max_body_chars_total=int(
                _coerce_int(skills.get("max_body_chars_total"), default=15000, min_value=256, max_value=1_000_000) or 15000
            ),
            strict=bool(skills.get("strict", False)),
            install_state_filename=str(skills.get("install_state_filename") or DEFAULT_INSTALL_STATE_FILENAME),
        )

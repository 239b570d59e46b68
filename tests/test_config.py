from __future__ import annotations

import os
from pathlib import Path

import pytest


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    from skillgate.config import SkillsConfig

    monkeypatch.setenv("SKILLGATE_BUNDLED_DIRS", os.pathsep.join(["/a", "", "/b"]))
    monkeypatch.setenv("SKILLGATE_DISABLED", "Noisy")
    monkeypatch.setenv("SKILLGATE_MAX_ACTIVE", "500")
    monkeypatch.setenv("SKILLGATE_MAX_BODY_CHARS", "nope")
    monkeypatch.setenv("SKILLGATE_STRICT", "yes")

    cfg = SkillsConfig.from_env()
    assert cfg.bundled_dirs == ("/a", "/b")
    assert cfg.disabled == frozenset({"noisy"})
    assert cfg.max_active == 64
    assert cfg.max_body_chars_per_skill == 6000
    assert cfg.strict is True


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    from skillgate.config import SkillsConfig

    for key in list(os.environ):
        if key.startswith("SKILLGATE_"):
            monkeypatch.delenv(key, raising=False)
    assert SkillsConfig.from_env() == SkillsConfig()


def test_load_settings_profiles(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    from skillgate.config import SkillsConfig, load_settings

    settings_path = tmp_path / "settings.yaml"
    settings_path.write_text(
        "\n".join(
            [
                "profiles:",
                "  default:",
                "    skills:",
                "      bundled_dirs: [skills]",
                "      max_active: 2",
                "  ci:",
                "    skills:",
                "      bundled_dirs: skills",
                "      disabled: [Slow]",
                "      strict: true",
                "",
            ]
        ),
        encoding="utf-8",
    )

    cfg = SkillsConfig.from_settings(load_settings(settings_path=settings_path))
    assert cfg.bundled_dirs == ("skills",)
    assert cfg.max_active == 2

    monkeypatch.setenv("SKILLGATE_PROFILE", "ci")
    cfg = SkillsConfig.from_settings(load_settings(settings_path=settings_path))
    assert cfg.bundled_dirs == ("skills",)
    assert cfg.disabled == frozenset({"slow"})
    assert cfg.strict is True
    assert cfg.max_active is None

    with pytest.raises(KeyError):
        load_settings("missing", settings_path=settings_path)
    with pytest.raises(FileNotFoundError):
        load_settings(settings_path=tmp_path / "absent.yaml")


def test_bundled_settings_file_loads(monkeypatch: pytest.MonkeyPatch) -> None:
    from skillgate.config import SkillsConfig, load_settings

    monkeypatch.delenv("SKILLGATE_PROFILE", raising=False)
    cfg = SkillsConfig.from_settings(load_settings())
    assert cfg.bundled_dirs == ("skills",)
    assert cfg.strict is False

from __future__ import annotations

import os
from pathlib import Path

import pytest


def _write_skill(root: Path, dirname: str, *, title: str | None = None) -> Path:
    skill_dir = root / dirname
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(
        f"---\ntitle: {title or dirname}\ndescription: {dirname} skill\n---\nBody of {dirname}\n",
        encoding="utf-8",
    )
    return skill_dir


def _roots(*paths: Path):
    from skillgate.discovery import bundled_roots

    return bundled_roots(str(p) for p in paths)


def test_discovers_packages_in_sorted_order(tmp_path: Path) -> None:
    from skillgate.discovery import discover

    root = tmp_path / "skills"
    _write_skill(root, "zeta")
    _write_skill(root, "alpha")
    (root / "notes").mkdir()
    (root / "README.md").write_text("not a skill", encoding="utf-8")
    _write_skill(root, ".hidden")
    _write_skill(root, "_draft")

    result = discover(_roots(root))
    assert [os.path.basename(s.absolute_path) for s in result.sources] == ["alpha", "zeta"]
    assert result.warnings == ()
    assert all(s.root_kind == "bundled" for s in result.sources)


def test_bundled_before_plugin(tmp_path: Path) -> None:
    from skillgate.discovery import discover
    from skillgate.schema import ROOT_PLUGIN, SkillSource

    bundled = tmp_path / "bundled"
    plugin = tmp_path / "plugin"
    _write_skill(plugin, "aaa")
    _write_skill(bundled, "zzz")

    result = discover(_roots(bundled), [SkillSource(root_kind=ROOT_PLUGIN, absolute_path=str(plugin), plugin_id="p1")])
    assert [os.path.basename(s.absolute_path) for s in result.sources] == ["zzz", "aaa"]
    assert result.sources[1].root_kind == "plugin"
    assert result.sources[1].plugin_id == "p1"


def test_missing_and_file_roots_warn(tmp_path: Path) -> None:
    from skillgate.discovery import discover

    afile = tmp_path / "file.txt"
    afile.write_text("x", encoding="utf-8")
    root = tmp_path / "skills"
    _write_skill(root, "one")

    result = discover(_roots(tmp_path / "nope", afile, root))
    assert [w.reason for w in result.warnings] == ["root_missing", "root_not_dir"]
    assert len(result.sources) == 1


def test_root_with_its_own_manifest_is_a_package(tmp_path: Path) -> None:
    from skillgate.discovery import discover

    single = _write_skill(tmp_path, "single")
    result = discover(_roots(single))
    assert [s.absolute_path for s in result.sources] == [str(single)]


def test_overlapping_roots_yield_each_package_once(tmp_path: Path) -> None:
    from skillgate.discovery import discover

    root = tmp_path / "skills"
    pkg = _write_skill(root, "one")
    result = discover(_roots(root, pkg, root))
    paths = [s.identity for s in result.sources]
    assert len(paths) == len(set(paths)) == 1
    assert [w.reason for w in result.warnings] == ["root_duplicate"]


def test_symlinked_package_is_skipped_once_seen(tmp_path: Path) -> None:
    from skillgate.discovery import discover

    root = tmp_path / "skills"
    real = _write_skill(root, "real")
    try:
        os.symlink(real, root / "alias", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks unavailable")

    result = discover(_roots(root))
    assert len(result.sources) == 1
    assert [w.reason for w in result.warnings] == ["cycle_skipped"]


def test_symlink_back_to_root_does_not_loop(tmp_path: Path) -> None:
    from skillgate.discovery import discover

    root = tmp_path / "skills"
    _write_skill(root, "one")
    try:
        os.symlink(root, root / "loop", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks unavailable")

    result = discover(_roots(root))
    assert len(result.sources) == 1
    assert [w.reason for w in result.warnings] == ["cycle_skipped"]

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

TEXT_EXTENSIONS: frozenset[str] = frozenset({".md", ".markdown", ".yaml", ".yml", ".json", ".txt"})
EXECUTABLE_EXTENSIONS: frozenset[str] = frozenset({".sh", ".ps1", ".bat", ".cmd", ".exe", ".dll", ".so", ".dylib", ".py", ".js"})
SKIPPED_DIRS: frozenset[str] = frozenset({".git", "__pycache__"})
IGNORED_FILES: frozenset[str] = frozenset({".gitkeep", ".DS_Store"})

DANGEROUS_SNIPPETS: tuple[str, ...] = (
    "rm -rf",
    "curl | bash",
    "curl | sh",
    "wget | sh",
    "powershell -enc",
    "set-executionpolicy",
    "format c:",
)


@dataclass(frozen=True)
class ScanResult:
    ok: bool
    errors: tuple[str, ...]
    files: int
    bytes: int


def scan_package(
    package_dir: str | Path,
    *,
    max_files: int = 200,
    max_total_bytes: int = 2 * 1024 * 1024,
    check_content: bool = True,
) -> ScanResult:
    """Check that a skill package holds only plain-text data files."""
    root = Path(package_dir)
    if not root.is_dir():
        return ScanResult(ok=False, errors=("package_missing",), files=0, bytes=0)

    errors: list[str] = []
    files = 0
    total = 0
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if any(part in SKIPPED_DIRS for part in path.relative_to(root).parts):
            continue
        if path.is_symlink():
            errors.append(f"symlink_blocked:{rel}")
            continue
        if path.is_dir() or path.name in IGNORED_FILES:
            continue

        files += 1
        if files > int(max_files):
            errors.append("too_many_files")
            break

        ext = path.suffix.lower()
        if ext in EXECUTABLE_EXTENSIONS:
            errors.append(f"executable_blocked:{rel}")
            continue
        if ext not in TEXT_EXTENSIONS:
            errors.append(f"extension_not_allowed:{rel}")
            continue

        try:
            data = path.read_bytes()
        except OSError:
            errors.append(f"read_failed:{rel}")
            continue
        total += len(data)
        if total > int(max_total_bytes):
            errors.append("total_size_exceeded")
            break
        if b"\x00" in data:
            errors.append(f"binary_blocked:{rel}")
            continue
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            errors.append(f"utf8_required:{rel}")
            continue
        if check_content:
            lowered = text.lower()
            hits = [needle for needle in DANGEROUS_SNIPPETS if needle in lowered]
            if hits:
                errors.append(f"dangerous_text:{rel}:{','.join(hits[:3])}")

    return ScanResult(ok=not errors, errors=tuple(errors), files=files, bytes=total)

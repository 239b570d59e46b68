from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .config import DEFAULT_INSTALL_STATE_FILENAME
from .logging import get_logger
from .schema import (
    INSTALL_FAILED,
    INSTALL_INSTALLED,
    INSTALL_PENDING,
    INSTALL_STATUSES,
    SkillCatalog,
    slugify,
)

logger = get_logger(__name__)

INSTALL_MISSING = "install_missing"
INSTALL_BROKEN = "install_broken"
INSTALL_STALE = "install_stale"
INSTALL_FAILED_ISSUE = "install_failed"
INSTALL_LEDGER_INVALID = "install_ledger_invalid"


def _utc_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass(frozen=True)
class InstallRecord:
    skill_id: str
    status: str
    source: str
    updated_at: str
    root: str
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status, "source": self.source, "updated_at": self.updated_at}
        if self.detail:
            data["detail"] = self.detail
        return data


@dataclass(frozen=True)
class InstallIssue:
    skill_id: str
    reason: str
    detail: str

    def to_dict(self) -> dict[str, str]:
        return {"skill_id": self.skill_id, "reason": self.reason, "detail": self.detail}


def ledger_path(root: str | Path, filename: str = DEFAULT_INSTALL_STATE_FILENAME) -> Path:
    return Path(os.path.expanduser(str(root))) / filename


def load_ledger(root: str | Path, filename: str = DEFAULT_INSTALL_STATE_FILENAME) -> tuple[dict[str, InstallRecord], list[InstallIssue]]:
    path = ledger_path(root, filename)
    if not path.exists():
        return {}, []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("install ledger %s unreadable: %s", path, exc)
        return {}, [InstallIssue(skill_id="*", reason=INSTALL_LEDGER_INVALID, detail=f"{path}:{exc}")]

    raw_records = data.get("records") if isinstance(data, dict) else None
    if not isinstance(raw_records, dict):
        return {}, [InstallIssue(skill_id="*", reason=INSTALL_LEDGER_INVALID, detail=f"{path}:records_not_mapping")]

    records: dict[str, InstallRecord] = {}
    issues: list[InstallIssue] = []
    for key, value in raw_records.items():
        sid = slugify(key)
        if not isinstance(value, dict) or value.get("status") not in INSTALL_STATUSES:
            issues.append(InstallIssue(skill_id=sid or str(key), reason=INSTALL_LEDGER_INVALID, detail=f"{path}:record_invalid"))
            continue
        records[sid] = InstallRecord(
            skill_id=sid,
            status=str(value["status"]),
            source=str(value.get("source") or ""),
            updated_at=str(value.get("updated_at") or ""),
            root=str(root),
            detail=value.get("detail") if isinstance(value.get("detail"), str) else None,
        )
    return records, issues


def write_record(
    root: str | Path,
    skill_id: str,
    status: str,
    *,
    source: str = "",
    detail: str | None = None,
    filename: str = DEFAULT_INSTALL_STATE_FILENAME,
) -> InstallRecord:
    if status not in INSTALL_STATUSES:
        raise ValueError(f"unknown install status: {status}")
    path = ledger_path(root, filename)
    records, _ = load_ledger(root, filename)
    record = InstallRecord(
        skill_id=slugify(skill_id),
        status=status,
        source=str(source or ""),
        updated_at=_utc_iso(),
        root=str(root),
        detail=detail,
    )
    records[record.skill_id] = record
    payload = {"records": {sid: rec.to_dict() for sid, rec in sorted(records.items())}}
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=True, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)
    return record


def check_records(records: Iterable[InstallRecord], catalog: SkillCatalog) -> list[InstallIssue]:
    """Compare install records with what actually parsed into the catalog."""
    broken: set[str] = set()
    for error in catalog.errors:
        if error.skill_id:
            broken.add(error.skill_id)
        else:
            broken.add(slugify(os.path.basename(os.path.dirname(error.path))))

    issues: list[InstallIssue] = []
    for record in records:
        skill = catalog.get(record.skill_id)
        if record.status == INSTALL_INSTALLED and skill is None:
            reason = INSTALL_BROKEN if record.skill_id in broken else INSTALL_MISSING
            issues.append(InstallIssue(skill_id=record.skill_id, reason=reason, detail=f"recorded in {record.root}"))
        elif record.status in (INSTALL_PENDING, INSTALL_FAILED) and skill is not None:
            issues.append(
                InstallIssue(skill_id=record.skill_id, reason=INSTALL_STALE, detail=f"recorded {record.status}, loaded from {skill.source_path}")
            )
        elif record.status == INSTALL_FAILED:
            issues.append(InstallIssue(skill_id=record.skill_id, reason=INSTALL_FAILED_ISSUE, detail=record.detail or record.source))
    return issues

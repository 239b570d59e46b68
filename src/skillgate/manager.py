from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .catalog import load_catalog
from .config import SkillsConfig
from .discovery import bundled_roots, discover
from .eligibility import evaluate_all
from .installs import InstallIssue, InstallRecord, check_records, load_ledger, write_record
from .logging import get_logger
from .matcher import match
from .plugins import discover_plugin_roots
from .render import compose, format_skill_index
from .scanner import scan_package
from .schema import (
    INSTALL_STATUSES,
    ROOT_BUNDLED,
    ROOT_PLUGIN,
    DiscoveryWarning,
    EligibilityDecision,
    Invocation,
    ParseError,
    PromptFragment,
    SkillCatalog,
    SkillDefinition,
    SkillSource,
    TurnContext,
)
from .selector import ActiveSkillSet, select

logger = get_logger(__name__)


@dataclass(frozen=True)
class TurnResult:
    invocation: Invocation
    decisions: tuple[EligibilityDecision, ...]
    active: ActiveSkillSet
    fragment: PromptFragment
    catalog_version: str

    @property
    def active_ids(self) -> list[str]:
        return [skill.id for skill in self.active]


@dataclass(frozen=True)
class SkillsStatus:
    loaded: int
    errored: int
    warnings: int
    built_at: float | None
    version: str
    installs: Mapping[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "loaded": int(self.loaded),
            "errored": int(self.errored),
            "warnings": int(self.warnings),
            "built_at": self.built_at,
            "version": self.version,
            "installs": dict(self.installs),
        }


@dataclass(frozen=True)
class ValidationReport:
    errors: tuple[ParseError, ...]
    warnings: tuple[DiscoveryWarning, ...]
    install_issues: tuple[InstallIssue, ...]
    scan_errors: tuple[str, ...] = ()
    valid: tuple[SkillDefinition, ...] = ()

    @property
    def ok(self) -> bool:
        return not (self.errors or self.install_issues or self.scan_errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "install_issues": [i.to_dict() for i in self.install_issues],
            "scan_errors": list(self.scan_errors),
            "valid": [s.id for s in self.valid],
        }


@dataclass(frozen=True)
class _State:
    catalog: SkillCatalog
    install_records: tuple[InstallRecord, ...]
    install_issues: tuple[InstallIssue, ...]


def _scan_errors(catalog: SkillCatalog) -> tuple[str, ...]:
    errors: list[str] = []
    for skill in catalog.ordered():
        errors.extend(f"{skill.id}:{err}" for err in scan_package(skill.source_path).errors)
    return tuple(errors)


class SkillsManager:
    """Owns the skill catalog and runs the per-turn pipeline against it.

    The catalog is rebuilt wholesale by ``refresh`` and swapped in under a
    lock, so turns evaluated concurrently always see one complete catalog.
    Rebuilds are serialized: a caller arriving while one is in flight waits
    for it and gets its result.
    """

    def __init__(
        self,
        config: SkillsConfig | None = None,
        *,
        settings: Mapping[str, Any] | None = None,
        base_dir: str | Path | None = None,
    ):
        self.config = config or SkillsConfig()
        self.settings = dict(settings or {})
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self._lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._state: _State | None = None

    def _resolve_dir(self, raw: str) -> str:
        path = Path(str(raw)).expanduser()
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path
        return str(path.absolute())

    def _collect_roots(self) -> tuple[list[SkillSource], list[SkillSource], list[DiscoveryWarning]]:
        bundled = bundled_roots(self._resolve_dir(d) for d in self.config.bundled_dirs)
        plugin_dirs = [self._resolve_dir(d) for d in self.config.plugin_dirs]
        plugin, warnings = discover_plugin_roots(plugin_dirs, self.settings)
        for extra in self.config.extra_plugin_skill_dirs:
            plugin.append(SkillSource(root_kind=ROOT_PLUGIN, absolute_path=self._resolve_dir(extra)))
        return bundled, plugin, warnings

    def _build(self) -> _State:
        bundled, plugin, plugin_warnings = self._collect_roots()
        discovered = discover(bundled, plugin)
        catalog = load_catalog(discovered.sources, [*plugin_warnings, *discovered.warnings])

        records: list[InstallRecord] = []
        issues: list[InstallIssue] = []
        for root in [*bundled, *plugin]:
            root_records, ledger_issues = load_ledger(root.absolute_path, self.config.install_state_filename)
            records.extend(root_records.values())
            issues.extend(ledger_issues)
        issues.extend(check_records(records, catalog))

        logger.info(
            "skill catalog built: %d loaded, %d errors, %d warnings (version %s)",
            len(catalog),
            len(catalog.errors),
            len(catalog.warnings),
            catalog.version,
        )
        return _State(
            catalog=catalog,
            install_records=tuple(records),
            install_issues=tuple(issues),
        )

    def _rebuild(self) -> _State:
        state = self._build()
        with self._lock:
            self._state = state
        return state

    def _refresh_state(self) -> _State:
        if not self._refresh_lock.acquire(blocking=False):
            # rebuild in flight: wait for it and share its result
            with self._refresh_lock:
                with self._lock:
                    state = self._state
                return state if state is not None else self._rebuild()
        try:
            return self._rebuild()
        finally:
            self._refresh_lock.release()

    def refresh(self) -> SkillCatalog:
        return self._refresh_state().catalog

    def ensure_ready(self) -> SkillCatalog:
        return self._current().catalog

    def _current(self) -> _State:
        with self._lock:
            state = self._state
        return state if state is not None else self._refresh_state()

    @property
    def catalog(self) -> SkillCatalog:
        return self._current().catalog

    def get_status(self) -> SkillsStatus:
        with self._lock:
            state = self._state
        if state is None:
            return SkillsStatus(loaded=0, errored=0, warnings=0, built_at=None, version="empty")
        counts = {status: 0 for status in INSTALL_STATUSES}
        for record in state.install_records:
            counts[record.status] = counts.get(record.status, 0) + 1
        return SkillsStatus(
            loaded=len(state.catalog),
            errored=len(state.catalog.errors),
            warnings=len(state.catalog.warnings),
            built_at=state.catalog.built_at,
            version=state.catalog.version,
            installs=counts,
        )

    def get_validation_report(self, *, strict: bool | None = None) -> ValidationReport:
        state = self._current()
        strict = self.config.strict if strict is None else bool(strict)
        scan_errors = _scan_errors(state.catalog) if strict else ()
        return ValidationReport(
            errors=state.catalog.errors,
            warnings=state.catalog.warnings,
            install_issues=state.install_issues,
            scan_errors=scan_errors,
            valid=tuple(state.catalog.ordered()),
        )

    def validate_path(self, path: str | Path) -> ValidationReport:
        """Validate skill packages under ``path`` without touching the live catalog."""
        root = SkillSource(root_kind=ROOT_BUNDLED, absolute_path=self._resolve_dir(str(path)))
        discovered = discover([root])
        catalog = load_catalog(discovered.sources, discovered.warnings)
        scan_errors = _scan_errors(catalog) if self.config.strict else ()
        return ValidationReport(
            errors=catalog.errors,
            warnings=catalog.warnings,
            install_issues=(),
            scan_errors=scan_errors,
            valid=tuple(catalog.ordered()),
        )

    def record_install(
        self,
        root: str | Path,
        skill_id: str,
        status: str,
        *,
        source: str = "",
        detail: str | None = None,
    ) -> InstallRecord:
        record = write_record(
            self._resolve_dir(str(root)),
            skill_id,
            status,
            source=source,
            detail=detail,
            filename=self.config.install_state_filename,
        )
        logger.info("install record %s -> %s", record.skill_id, record.status)
        return record

    def evaluate(self, context: TurnContext, catalog: SkillCatalog | None = None) -> list[EligibilityDecision]:
        catalog = catalog if catalog is not None else self.catalog
        return evaluate_all(catalog.ordered(), context, disabled=self.config.disabled)

    def match(self, raw_text: str) -> Invocation:
        return match(raw_text, self.catalog)

    def resolve_turn(self, context: TurnContext) -> TurnResult:
        catalog = self.catalog
        invocation = match(context.explicit_user_text, catalog)
        if invocation.is_ambiguous:
            logger.debug("ambiguous invocation %s: %s", invocation.command_name, ",".join(invocation.candidates))
        decisions = self.evaluate(context, catalog)
        active = select(invocation, decisions, catalog, max_active=self.config.max_active)
        fragment = compose(
            active,
            max_body_chars_per_skill=self.config.max_body_chars_per_skill,
            max_body_chars_total=self.config.max_body_chars_total,
        )
        return TurnResult(
            invocation=invocation,
            decisions=tuple(decisions),
            active=active,
            fragment=fragment,
            catalog_version=catalog.version,
        )

    def run_turn(self, context: TurnContext) -> PromptFragment:
        return self.resolve_turn(context).fragment

    def skill_index(self, context: TurnContext) -> str:
        catalog = self.catalog
        eligible = {d.skill_id for d in self.evaluate(context, catalog) if d.eligible}
        return format_skill_index(s for s in catalog.ordered() if s.id in eligible)

"""
Report lifecycle coordinator.

One state machine drives create, update and delete:

    VALIDATING -> NORMALIZING -> RENDERING -> PERSISTING -> CLEANING_UP -> COMMITTED
         |              |             |             |
         +--> REJECTED <+             +--> FAILED <-+

Ordering rules every path follows:
- a row is only inserted/updated to point at an artifact that already exists
- a file is only deleted after the row that stopped referencing it is committed

Collaborators (store, renderer, file store, audit sink) are injected so the
ordering and the compensating cleanup can be exercised with fakes.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterator, List, Optional
from zoneinfo import ZoneInfo

from backend.app.lpj.errors import (
    CleanupWarning,
    LpjError,
    NormalizationError,
    PersistenceError,
    RenderError,
    ReportNotFound,
    SubmissionRejected,
    ValidationError,
)
from backend.app.lpj.ledger import build_ledger, resolve_totals
from backend.app.lpj.months import current_month_key, is_future_month, is_real_month, normalize_month
from backend.app.lpj.records import (
    ArtifactRef,
    CanonicalReport,
    ReportDraft,
    ReportFields,
)
from backend.app.rendering.base import RenderInput, ReportRenderer
from backend.app.services.audit_service import (
    CREATE_REPORT,
    DELETE_REPORT,
    RESOURCE_REPORT,
    UPDATE_REPORT,
    AuditEmitter,
    AuditEvent,
)
from backend.app.services.file_store import FileStore
from backend.app.services.report_store import ReportStore

logger = logging.getLogger(__name__)

DEFAULT_GENERIC_DIVISIONS = frozenset({"Ko'or Asrama"})
DEFAULT_RENDER_TIMEOUT = 60.0

REQUIRED_FIELDS = (
    ("reporter_name", "reporter name"),
    ("division", "division"),
    ("month", "month"),
    ("work_program", "work program"),
)


# -------------------------
# State machine
# -------------------------

class LifecycleState(str, Enum):
    VALIDATING = "VALIDATING"
    NORMALIZING = "NORMALIZING"
    RENDERING = "RENDERING"
    PERSISTING = "PERSISTING"
    CLEANING_UP = "CLEANING_UP"
    COMMITTED = "COMMITTED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


S = LifecycleState

SUBMIT_TRANSITIONS: Dict[LifecycleState, FrozenSet[LifecycleState]] = {
    S.VALIDATING: frozenset({S.NORMALIZING, S.REJECTED}),
    S.NORMALIZING: frozenset({S.RENDERING, S.REJECTED}),
    S.RENDERING: frozenset({S.PERSISTING, S.FAILED}),
    S.PERSISTING: frozenset({S.CLEANING_UP, S.FAILED}),
    S.CLEANING_UP: frozenset({S.COMMITTED}),
    S.COMMITTED: frozenset(),
    S.REJECTED: frozenset(),
    S.FAILED: frozenset(),
}

# delete has nothing to normalize or render
DELETE_TRANSITIONS: Dict[LifecycleState, FrozenSet[LifecycleState]] = {
    S.VALIDATING: frozenset({S.PERSISTING, S.REJECTED}),
    S.PERSISTING: frozenset({S.CLEANING_UP, S.FAILED}),
    S.CLEANING_UP: frozenset({S.COMMITTED}),
    S.COMMITTED: frozenset(),
    S.REJECTED: frozenset(),
    S.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({S.COMMITTED, S.REJECTED, S.FAILED})


class IllegalTransition(RuntimeError):
    pass


@dataclass
class LifecycleRun:
    operation: str
    report_id: Optional[str] = None
    state: LifecycleState = S.VALIDATING
    history: List[LifecycleState] = field(default_factory=lambda: [S.VALIDATING])
    warnings: List[CleanupWarning] = field(default_factory=list)
    report: Optional[CanonicalReport] = None

    @property
    def transitions(self) -> Dict[LifecycleState, FrozenSet[LifecycleState]]:
        return DELETE_TRANSITIONS if self.operation == "delete" else SUBMIT_TRANSITIONS

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, target: LifecycleState) -> None:
        if target not in self.transitions.get(self.state, frozenset()):
            raise IllegalTransition(f"{self.operation}: {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)


# -------------------------
# Per-report mutual exclusion
# -------------------------

class ReportLockRegistry:
    """Locks keyed by report id; entries are dropped when nobody holds or waits."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}  # id -> [lock, users]

    @contextmanager
    def hold(self, report_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(report_id, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(report_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class _NoLocks:
    @contextmanager
    def hold(self, report_id: str) -> Iterator[None]:
        yield


NO_LOCKS = _NoLocks()

_EXECUTOR_LOCK = threading.Lock()
_RENDER_EXECUTOR: Optional[ThreadPoolExecutor] = None


def shared_render_executor() -> ThreadPoolExecutor:
    global _RENDER_EXECUTOR
    with _EXECUTOR_LOCK:
        if _RENDER_EXECUTOR is None:
            _RENDER_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="lpj-render")
        return _RENDER_EXECUTOR


# -------------------------
# Helpers
# -------------------------

def artifact_filename(division: str, month: str, stamp_ms: int) -> str:
    safe_division = re.sub(r"\s+", "_", division.strip())
    safe_division = re.sub(r"[^A-Za-z0-9_.-]", "_", safe_division) or "report"
    return f"LPJ_{safe_division}_{month}_{stamp_ms}.pdf"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# -------------------------
# Coordinator
# -------------------------

class ReportLifecycle:
    def __init__(
        self,
        store: ReportStore,
        renderer: ReportRenderer,
        files: FileStore,
        audit: AuditEmitter,
        artifacts_dir: Path,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        timezone: str = "Asia/Jakarta",
        generic_divisions: FrozenSet[str] = DEFAULT_GENERIC_DIVISIONS,
        render_timeout: float = DEFAULT_RENDER_TIMEOUT,
        locks: Optional[ReportLockRegistry] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self._store = store
        self._renderer = renderer
        self._files = files
        self._audit = audit
        self._artifacts_dir = Path(artifacts_dir)
        self._timezone = timezone
        self._clock = clock or (lambda: datetime.now(ZoneInfo(timezone)))
        self._generic_divisions = generic_divisions
        self._render_timeout = render_timeout
        self._locks = locks if locks is not None else NO_LOCKS
        self._executor = executor or shared_render_executor()

    # -------------------------
    # Entry points
    # -------------------------

    def create(self, draft: ReportDraft, actor_id: Optional[str]) -> LifecycleRun:
        run = LifecycleRun("create")
        started = time.monotonic()
        try:
            report = self._prepare(run, draft, base=None, user_id=actor_id)
        except LpjError as exc:
            self._discard_staged(run, draft)
            exc.run = run
            raise

        logger.info(
            "Processing new report submission: division=%s month=%s has_attachment=%s user_id=%s",
            report.division, report.month, draft.attachment is not None, actor_id,
        )
        try:
            artifact = self._render(run, report)
            report = report.with_changes(artifact=artifact, attachment=draft.attachment)

            run.advance(S.PERSISTING)
            try:
                report_id = self._store.insert(report)
            except Exception as exc:
                self._fail_persist(run, exc, new_artifact=artifact, actor_id=actor_id)
        except LpjError as exc:
            if run.state == S.FAILED:
                self._discard_staged(run, draft)
            exc.run = run
            raise

        run.report_id = report_id
        run.report = report.with_changes(id=report_id)
        run.advance(S.CLEANING_UP)  # nothing superseded on create
        run.advance(S.COMMITTED)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Report created successfully: report_id=%s file=%s processing_time=%sms",
            report_id, artifact.filename, elapsed_ms,
        )
        self._emit(actor_id, CREATE_REPORT, report_id, run.report, elapsed_ms, draft.attachment is not None)
        return run

    def update(self, report_id: str, draft: ReportDraft, actor_id: Optional[str]) -> LifecycleRun:
        run = LifecycleRun("update", report_id=report_id)
        started = time.monotonic()
        with self._locks.hold(report_id):
            try:
                base = self._store.get(report_id)
                if base is None:
                    run.advance(S.REJECTED)
                    raise ReportNotFound(report_id)
                report = self._prepare(run, draft, base=base, user_id=base.user_id)
            except LpjError as exc:
                self._discard_staged(run, draft)
                exc.run = run
                raise

            try:
                artifact = self._render(run, report)
                updated = report.with_changes(
                    id=report_id,
                    artifact=artifact,
                    attachment=draft.attachment or base.attachment,
                    created_at=base.created_at,
                )

                run.advance(S.PERSISTING)
                try:
                    self._store.update(report_id, updated)
                except Exception as exc:
                    self._fail_persist(run, exc, new_artifact=artifact, actor_id=actor_id)
            except LpjError as exc:
                if run.state == S.FAILED:
                    self._discard_staged(run, draft)
                exc.run = run
                raise

            run.report = updated
            run.advance(S.CLEANING_UP)
            if base.artifact and base.artifact.path != artifact.path:
                self._best_effort_delete(run, base.artifact.path)
            if draft.attachment and base.attachment and base.attachment.path != draft.attachment.path:
                self._best_effort_delete(run, base.attachment.path)
            run.advance(S.COMMITTED)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Report updated successfully: report_id=%s file=%s processing_time=%sms",
            report_id, artifact.filename, elapsed_ms,
        )
        self._emit(actor_id, UPDATE_REPORT, report_id, updated, elapsed_ms, updated.attachment is not None)
        return run

    def delete(self, report_id: str, actor_id: Optional[str]) -> LifecycleRun:
        run = LifecycleRun("delete", report_id=report_id)
        started = time.monotonic()
        with self._locks.hold(report_id):
            existing = self._store.get(report_id)
            if existing is None:
                run.advance(S.REJECTED)
                exc = ReportNotFound(report_id)
                exc.run = run
                raise exc

            run.advance(S.PERSISTING)
            try:
                self._store.delete(report_id)
            except PersistenceError as exc:
                run.advance(S.FAILED)
                logger.error("Error deleting report: report_id=%s user_id=%s cause=%s", report_id, actor_id, exc)
                exc.run = run
                raise
            except Exception as exc:
                run.advance(S.FAILED)
                logger.exception("Error deleting report: report_id=%s user_id=%s", report_id, actor_id)
                err = PersistenceError(str(exc))
                err.run = run
                raise err from exc

            run.report = existing
            run.advance(S.CLEANING_UP)
            if existing.artifact:
                self._best_effort_delete(run, existing.artifact.path)
            if existing.attachment:
                self._best_effort_delete(run, existing.attachment.path)
            run.advance(S.COMMITTED)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("Report deleted: report_id=%s", report_id)
        self._emit(actor_id, DELETE_REPORT, report_id, existing, elapsed_ms, existing.attachment is not None)
        return run

    # -------------------------
    # VALIDATING / NORMALIZING
    # -------------------------

    def _validate(self, draft: ReportDraft, base: Optional[CanonicalReport]) -> ReportFields:
        values = {}
        for name, label in REQUIRED_FIELDS:
            value = _clean(getattr(draft, name))
            if value is None and base is not None:
                value = _clean(getattr(base, name))
            if value is None:
                raise ValidationError(f"{label} is required", field=name)
            values[name] = value

        def merged(name: str) -> Optional[str]:
            value = getattr(draft, name)
            if value is None and base is not None:
                return getattr(base, name)
            return value

        return ReportFields(
            reporter_name=values["reporter_name"],
            division=values["division"],
            month=values["month"],
            work_program=values["work_program"],
            sub_unit=_clean(draft.sub_unit),
            evaluation=merged("evaluation"),
            next_plan=merged("next_plan"),
        )

    def resolve_division(self, division: str, sub_unit: Optional[str]) -> str:
        if division in self._generic_divisions and sub_unit:
            return sub_unit
        return division

    def _prepare(
        self,
        run: LifecycleRun,
        draft: ReportDraft,
        base: Optional[CanonicalReport],
        user_id: Optional[str],
    ) -> CanonicalReport:
        try:
            fields = self._validate(draft, base)
            run.advance(S.NORMALIZING)

            month = normalize_month(fields.month)
            if not is_real_month(month):
                raise NormalizationError(f"invalid month {month}", raw_value=fields.month)
            current = current_month_key(self._clock(), self._timezone)
            if is_future_month(month, current):
                raise NormalizationError(
                    f"report month {month} must not be in the future (current month {current})",
                    raw_value=fields.month,
                )

            rebuild = base is None or draft.has_ledger_input
            if rebuild:
                ledger = build_ledger(
                    draft.income_labels,
                    draft.income_amounts,
                    draft.expense_labels,
                    draft.expense_amounts,
                )
            else:
                ledger = base.ledger

            explicit_income = draft.total_income
            explicit_expense = draft.total_expense
            if not rebuild:
                explicit_income = base.total_income if explicit_income is None else explicit_income
                explicit_expense = base.total_expense if explicit_expense is None else explicit_expense
            totals = resolve_totals(ledger, explicit_income, explicit_expense)
        except SubmissionRejected as exc:
            run.advance(S.REJECTED)
            logger.info("Report submission rejected: field=%s reason=%s", exc.field, exc.message)
            raise

        return CanonicalReport(
            user_id=user_id,
            division=self.resolve_division(fields.division, fields.sub_unit),
            month=month,
            reporter_name=fields.reporter_name,
            work_program=fields.work_program,
            total_income=totals.income,
            total_expense=totals.expense,
            evaluation=fields.evaluation,
            next_plan=fields.next_plan,
            ledger=ledger,
        )

    # -------------------------
    # RENDERING
    # -------------------------

    def _artifact_path(self, report: CanonicalReport) -> Path:
        stamp_ms = int(self._clock().timestamp() * 1000)
        while True:
            path = self._artifacts_dir / artifact_filename(report.division, report.month, stamp_ms)
            if not self._files.exists(path):
                return path
            stamp_ms += 1

    def _render(self, run: LifecycleRun, report: CanonicalReport) -> ArtifactRef:
        run.advance(S.RENDERING)
        destination = self._artifact_path(report)
        data = RenderInput.from_report(report, generated_at=self._clock())

        future: Future = self._executor.submit(self._renderer.render, data, destination)
        try:
            future.result(timeout=self._render_timeout)
            if not self._files.exists(destination):
                raise RenderError(f"renderer returned without writing {destination.name}")
        except FuturesTimeout:
            # a queued render never starts; a running one is reaped when it finishes
            if not future.cancel():
                future.add_done_callback(lambda f: self._discard_late_artifact(f, destination))
            self._render_failed(run, report, destination)
            raise RenderError(f"render timed out after {self._render_timeout}s") from None
        except RenderError:
            self._render_failed(run, report, destination)
            raise
        except Exception as exc:
            self._render_failed(run, report, destination)
            raise RenderError(f"render failed: {exc}") from exc

        return ArtifactRef(filename=destination.name, path=str(destination))

    def _render_failed(self, run: LifecycleRun, report: CanonicalReport, destination: Path) -> None:
        run.advance(S.FAILED)
        logger.exception(
            "Error generating report artifact: report_id=%s user_id=%s file=%s",
            run.report_id, report.user_id, destination.name,
        )
        # the renderer contract forbids partial files; enforce it anyway
        self._best_effort_delete(run, destination)

    def _discard_late_artifact(self, future: Future, destination: Path) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        logger.warning("Discarding artifact published after render timeout: %s", destination)
        try:
            self._files.delete(destination)
        except OSError as exc:
            logger.warning("%s", CleanupWarning(str(destination), exc))

    # -------------------------
    # PERSISTING failure / CLEANING_UP
    # -------------------------

    def _fail_persist(
        self,
        run: LifecycleRun,
        exc: Exception,
        *,
        new_artifact: ArtifactRef,
        actor_id: Optional[str],
    ) -> None:
        run.advance(S.FAILED)
        logger.error(
            "Error persisting report: report_id=%s user_id=%s cause=%s",
            run.report_id, actor_id, exc,
        )
        # compensating cleanup: nothing references the fresh artifact
        self._best_effort_delete(run, new_artifact.path)
        if isinstance(exc, PersistenceError):
            raise exc
        raise PersistenceError(str(exc)) from exc

    def _discard_staged(self, run: LifecycleRun, draft: ReportDraft) -> None:
        if draft.attachment is not None:
            self._best_effort_delete(run, draft.attachment.path)

    def _best_effort_delete(self, run: LifecycleRun, path) -> None:
        try:
            self._files.delete(path)
        except OSError as exc:
            warning = CleanupWarning(str(path), exc)
            run.warnings.append(warning)
            logger.warning("%s", warning)

    # -------------------------
    # Audit
    # -------------------------

    def _emit(
        self,
        actor_id: Optional[str],
        action: str,
        report_id: str,
        report: CanonicalReport,
        elapsed_ms: int,
        has_attachment: bool,
    ) -> None:
        event = AuditEvent(
            actor_id=actor_id,
            action=action,
            resource_type=RESOURCE_REPORT,
            resource_id=report_id,
            details={
                "division": report.division,
                "month": report.month,
                "processing_time_ms": elapsed_ms,
                "has_attachment": has_attachment,
            },
        )
        try:
            self._audit.emit(event)
        except Exception:
            # the transition is already committed; an audit failure must not undo it
            logger.exception("Failed to emit audit event %s for report %s", action, report_id)

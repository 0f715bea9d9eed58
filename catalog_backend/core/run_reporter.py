"""Run Reporter: outcome counters and the operator-facing import log.

Append-only: each row is recorded exactly once and nothing recorded is ever
edited. summary() returns a copy, so readers polling from another thread see
a consistent snapshot.
"""

import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from catalog_backend.core.models import OutcomeKind, RowOutcome

logger = logging.getLogger(__name__)

NOTE = "note"


@dataclass(frozen=True)
class LogEntry:
    row: Optional[int]
    kind: str
    message: str


@dataclass
class RunSummary:
    total: int = 0
    expected: int = 0
    succeeded: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0
    log: list[LogEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _display_name(name: str) -> str:
    return name.strip() if name and name.strip() else "Unknown"


def format_outcome(outcome: RowOutcome) -> str:
    """'Row 14: "Kada Set" - Duplicate' and friends."""
    prefix = f"Row {outcome.row_number}"
    name = _display_name(outcome.name)
    if outcome.kind == OutcomeKind.SUCCESS:
        return f'{prefix}: "{name}" - Success'
    if outcome.kind == OutcomeKind.DUPLICATE:
        return f'{prefix}: "{name}" - Duplicate'
    if outcome.kind == OutcomeKind.SKIPPED:
        return f"{prefix}: Skipped - {outcome.reason}"
    return f'{prefix}: "{name}" - {outcome.reason}'


class RunReporter:
    def __init__(
        self,
        expected: int = 0,
        on_change: Optional[Callable[[RunSummary], None]] = None,
    ):
        self._lock = threading.Lock()
        self._summary = RunSummary(expected=expected)
        self._recorded: set[int] = set()
        self._on_change = on_change

    def record(self, row_number: int, outcome: RowOutcome) -> LogEntry:
        """Count one finished row and append its log line (after any notes)."""
        with self._lock:
            if row_number in self._recorded:
                raise ValueError(f"Row {row_number} already has an outcome")
            self._recorded.add(row_number)

            s = self._summary
            if outcome.kind == OutcomeKind.SUCCESS:
                s.succeeded += 1
            elif outcome.kind == OutcomeKind.DUPLICATE:
                s.duplicates += 1
            elif outcome.kind == OutcomeKind.SKIPPED:
                s.skipped += 1
            else:
                s.failed += 1
            s.total += 1

            for note in outcome.notes:
                s.log.append(LogEntry(row_number, NOTE, f"Row {row_number}: {note}"))
            entry = LogEntry(row_number, outcome.kind.value, format_outcome(outcome))
            s.log.append(entry)

        self._notify()
        return entry

    def note(self, row_number: Optional[int], message: str) -> LogEntry:
        """Append an informational line. Counters are untouched."""
        text = f"Row {row_number}: {message}" if row_number is not None else message
        entry = LogEntry(row_number, NOTE, text)
        with self._lock:
            self._summary.log.append(entry)
        return entry

    def summary(self) -> RunSummary:
        with self._lock:
            s = self._summary
            return RunSummary(
                total=s.total,
                expected=s.expected,
                succeeded=s.succeeded,
                duplicates=s.duplicates,
                skipped=s.skipped,
                failed=s.failed,
                log=list(s.log),
            )

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.summary())
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

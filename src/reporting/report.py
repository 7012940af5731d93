"""Phase reporting for lifecycle operations."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from common import FAIL_MARK, PASS_MARK, WARN_MARK

STATUS_MARKS = {'passed': PASS_MARK, 'warned': WARN_MARK, 'failed': FAIL_MARK, 'skipped': '-'}


@dataclass
class PhaseResult:
    """Result of one lifecycle phase."""
    name: str
    description: str
    status: str  # 'passed', 'warned', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass
class PhaseReport:
    """Collects phase results for one operation against one cluster."""
    cluster: str
    operation: str
    dry_run: bool = False
    phases: list[PhaseResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    _phase_start: Optional[datetime] = field(default=None, repr=False)

    def start(self):
        """Mark operation start."""
        self.started_at = datetime.now()

    def start_phase(self, _name: str):
        """Mark phase start."""
        self._phase_start = datetime.now()

    def pass_phase(self, name: str, description: str, message: str = ''):
        self._record_phase(name, description, 'passed', message)

    def warn_phase(self, name: str, description: str, message: str = ''):
        """Record a phase that failed without stopping the operation."""
        self._record_phase(name, description, 'warned', message)

    def fail_phase(self, name: str, description: str, message: str = ''):
        self._record_phase(name, description, 'failed', message)

    def skip_phase(self, name: str, description: str, message: str = ''):
        self.phases.append(PhaseResult(
            name=name,
            description=description,
            status='skipped',
            message=message,
        ))

    def _record_phase(self, name: str, description: str, status: str, message: str):
        now = datetime.now()
        duration = (now - self._phase_start).total_seconds() if self._phase_start else 0.0
        self.phases.append(PhaseResult(
            name=name,
            description=description,
            status=status,
            message=message,
            duration=duration,
            started_at=self._phase_start,
            finished_at=now
        ))
        self._phase_start = None

    def finish(self):
        self.finished_at = datetime.now()

    @property
    def overall(self) -> str:
        """'fail' if any phase failed, 'warn' if any warned, else 'pass'."""
        statuses = {p.status for p in self.phases}
        if 'failed' in statuses:
            return 'fail'
        if 'warned' in statuses:
            return 'warn'
        return 'pass'

    def counts(self) -> dict[str, int]:
        result = {'passed': 0, 'warned': 0, 'failed': 0, 'skipped': 0}
        for p in self.phases:
            result[p.status] = result.get(p.status, 0) + 1
        return result

    def summary_line(self) -> str:
        c = self.counts()
        mark = {'pass': PASS_MARK, 'warn': WARN_MARK, 'fail': FAIL_MARK}[self.overall]
        return (f"{mark} {self.operation} {self.cluster}: {self.overall.upper()} "
                f"({c['passed']} passed, {c['warned']} warned, {c['failed']} failed, {c['skipped']} skipped)")

    def phase_lines(self) -> list[str]:
        return [
            f"  {STATUS_MARKS.get(p.status, '?')} {p.description}" + (f": {p.message}" if p.message else '')
            for p in self.phases
        ]

    def to_dict(self) -> dict:
        """Return report as dictionary for JSON output."""
        duration = (self.finished_at - self.started_at).total_seconds() if self.finished_at and self.started_at else 0
        return {
            'cluster': self.cluster,
            'operation': self.operation,
            'dry_run': self.dry_run,
            'result': self.overall,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration_seconds': round(duration, 1),
            'phases': [
                {
                    'name': p.name,
                    'description': p.description,
                    'status': p.status,
                    'message': p.message,
                    'duration': round(p.duration, 1),
                }
                for p in self.phases
            ]
        }

    def write_json(self, report_dir: Path) -> Path:
        """Write the JSON report and return its path."""
        report_dir.mkdir(parents=True, exist_ok=True)
        filename = self._report_filename(report_dir, 'json')
        with open(filename, 'w', encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        return filename

    def _report_filename(self, report_dir: Path, ext: str) -> Path:
        """Report filename: <timestamp>.<operation>.<cluster>.<result>.<ext>"""
        timestamp = self.started_at.strftime('%Y%m%d-%H%M%S') if self.started_at else 'unknown'
        return report_dir / f"{timestamp}.{self.operation}.{self.cluster}.{self.overall}.{ext}"

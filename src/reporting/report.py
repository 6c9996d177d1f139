"""Deployment attempt reporting."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class PhaseResult:
    """Result of a deployment phase."""
    name: str
    status: str  # 'passed', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0
    finished_at: Optional[datetime] = None


@dataclass
class DeploymentReport:
    """Collects per-phase results for one attempt and writes them into its workspace."""
    machine_id: str
    workspace_id: str
    report_dir: Optional[Path] = None
    phases: list[PhaseResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success: bool = False
    warnings: list[str] = field(default_factory=list)

    def start(self):
        """Mark attempt start."""
        self.started_at = datetime.now()

    def pass_phase(self, name: str, message: str = '', duration: float = 0.0):
        """Record passed phase."""
        self._record_phase(name, 'passed', message, duration)

    def fail_phase(self, name: str, message: str = '', duration: float = 0.0):
        """Record failed phase."""
        self._record_phase(name, 'failed', message, duration)

    def skip_phase(self, name: str, message: str = ''):
        """Record skipped phase."""
        self._record_phase(name, 'skipped', message, 0.0)

    def warn(self, message: str):
        self.warnings.append(message)

    def _record_phase(self, name: str, status: str, message: str, duration: float):
        self.phases.append(PhaseResult(
            name=name,
            status=status,
            message=message,
            duration=duration,
            finished_at=datetime.now()
        ))

    def phase_status(self, name: str) -> Optional[str]:
        """Status of the last recorded phase with this name."""
        for p in reversed(self.phases):
            if p.name == name:
                return p.status
        return None

    @property
    def duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def finish(self, success: bool):
        """Finalize report and write files when a report directory is set."""
        self.finished_at = datetime.now()
        self.success = success
        if self.report_dir is not None and self.report_dir.is_dir():
            try:
                self._write_json()
                self._write_markdown()
            except OSError as e:
                logger.error(f"Failed to write report for {self.workspace_id}: {e}")

    def to_dict(self) -> dict:
        return {
            'machine_id': self.machine_id,
            'workspace_id': self.workspace_id,
            'success': self.success,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration': round(self.duration, 1),
            'warnings': list(self.warnings),
            'phases': [
                {
                    'name': p.name,
                    'status': p.status,
                    'message': p.message,
                    'duration': round(p.duration, 1),
                }
                for p in self.phases
            ]
        }

    def _write_json(self):
        with open(self.report_dir / 'deployment.json', 'w', encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    def _write_markdown(self):
        if not self.success:
            status = 'FAILED'
        elif self.warnings:
            status = 'DEPLOYED (bootstrap incomplete)'
        else:
            status = 'DEPLOYED'

        lines = [
            f"# {self.workspace_id}",
            "",
            f"**Machine**: {self.machine_id}",
            f"**Status**: {status}",
            f"**Date**: {self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else 'N/A'}",
            f"**Duration**: {self.duration:.1f}s",
            "",
            "## Phases",
            "",
            "| Phase | Status | Duration | Message |",
            "|-------|--------|----------|---------|",
        ]

        for p in self.phases:
            message = p.message.replace('\n', ' ').replace('|', '\\|')[:200]
            lines.append(f"| {p.name} | {p.status} | {p.duration:.1f}s | {message} |")

        if self.warnings:
            lines.extend(["", "## Warnings", ""])
            lines.extend(f"- {w}" for w in self.warnings)

        lines.extend(["", "---", f"Generated: {datetime.now().isoformat()}"])

        with open(self.report_dir / 'deployment.md', 'w', encoding="utf-8") as f:
            f.write('\n'.join(lines) + '\n')

#!/usr/bin/env python3
"""Tests for reporting/report.py."""

import json
import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from reporting import DeploymentReport


class TestDeploymentReport:
    """Test DeploymentReport."""

    def test_records_phases(self):
        report = DeploymentReport(machine_id='vm-1', workspace_id='w')
        report.start()
        report.pass_phase('init', 'ok', 1.23)
        report.fail_phase('apply', 'boom', 2.0)
        report.skip_phase('output')

        assert report.phase_status('init') == 'passed'
        assert report.phase_status('apply') == 'failed'
        assert report.phase_status('output') == 'skipped'
        assert report.phase_status('exec') is None

    def test_finish_without_dir_writes_nothing(self, tmp_path):
        report = DeploymentReport(machine_id='vm-1', workspace_id='w')
        report.start()
        report.finish(False)
        assert report.success is False
        assert list(tmp_path.iterdir()) == []

    def test_finish_writes_files(self, tmp_path):
        report = DeploymentReport(machine_id='vm-1', workspace_id='deployment-vm-1-1-ab', report_dir=tmp_path)
        report.start()
        report.pass_phase('init', 'terraform init completed', 0.5)
        report.fail_phase('apply', 'line one\nline | two', 1.0)
        report.finish(False)

        data = json.loads((tmp_path / 'deployment.json').read_text())
        assert data['machine_id'] == 'vm-1'
        assert data['success'] is False
        assert [p['status'] for p in data['phases']] == ['passed', 'failed']

        md = (tmp_path / 'deployment.md').read_text()
        assert md.startswith('# deployment-vm-1-1-ab')
        assert '**Status**: FAILED' in md
        assert 'line one line \\| two' in md

    def test_warnings_in_markdown(self, tmp_path):
        report = DeploymentReport(machine_id='vm-1', workspace_id='w', report_dir=tmp_path)
        report.start()
        report.warn('E400: Application bootstrap may be incomplete (exec failed)')
        report.finish(True)

        md = (tmp_path / 'deployment.md').read_text()
        assert 'DEPLOYED (bootstrap incomplete)' in md
        assert '## Warnings' in md
        assert json.loads((tmp_path / 'deployment.json').read_text())['warnings'] == [
            'E400: Application bootstrap may be incomplete (exec failed)']

    def test_write_error_does_not_raise(self, tmp_path, caplog):
        report = DeploymentReport(machine_id='vm-1', workspace_id='w', report_dir=tmp_path)
        report.start()
        with patch('builtins.open', side_effect=OSError(28, 'No space left on device')):
            report.finish(True)

        assert report.success is True
        assert 'Failed to write report' in caplog.text

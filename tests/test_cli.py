#!/usr/bin/env python3
"""Tests for cli.py - noun dispatch and machine/deploy commands."""

import json
import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from cli import NOUN_COMMANDS, deploy_main, machine_main, main
from models import DeploymentResult


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ('VMCANVAS_CONFIG', 'VMCANVAS_TOOL', 'ANTHROPIC_API_KEY'):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('VMCANVAS_DATA_DIR', str(tmp_path / 'data'))
    monkeypatch.setenv('VMCANVAS_DEPLOYMENTS_DIR', str(tmp_path / 'deployments'))
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestMain:
    """Test top-level dispatch."""

    def test_no_args_prints_usage(self, capsys):
        assert main([]) == 1
        out = capsys.readouterr().out
        for noun in NOUN_COMMANDS:
            assert noun in out

    def test_help(self, capsys):
        assert main(['--help']) == 0

    def test_unknown_noun(self, capsys):
        assert main(['launch']) == 1
        assert "Unknown noun 'launch'" in capsys.readouterr().err

    def test_unknown_option(self, capsys):
        assert main(['--frobnicate', 'machine']) == 1

    def test_catalog(self, capsys):
        assert main(['catalog']) == 0
        data = json.loads(capsys.readouterr().out)
        assert set(data) == {'regions', 'instanceSizes', 'applications', 'machines'}

    def test_bad_config(self, env, capsys):
        (env / 'bad.yaml').write_text('colour: blue\n')
        assert main(['--config', str(env / 'bad.yaml'), 'machine', 'list']) == 1
        assert 'colour' in capsys.readouterr().err

    def test_select_without_key(self, env, capsys):
        assert main(['select', 'a', 'vscode', 'box']) == 0
        assert json.loads(capsys.readouterr().out)['id'] == 'vscode-large-eu-west'

    def test_machine_round_trip(self, env, capsys):
        assert main(['machine', 'create', '--id', 'vm-1', '--name', 'A',
                     '--region', 'us-west-1', '--size', 't2.micro']) == 0
        capsys.readouterr()

        assert main(['machine', 'list']) == 0
        listed = json.loads(capsys.readouterr().out)
        assert [m['id'] for m in listed] == ['vm-1']
        assert (env / 'data' / 'machines.json').exists()


class TestMachineMain:
    """Test machine subcommands against a store."""

    def test_create_from_file(self, store, tmp_path, capsys):
        record = tmp_path / 'vm.yaml'
        record.write_text('id: vm-2\nname: B\nregion: eu-west-1\ninstanceSize: t3.large\napplication: vscode\n')
        assert machine_main(['create', '--file', str(record)], store) == 0
        assert store.get('vm-2').application == 'vscode'

    def test_flags_override_file(self, store, tmp_path):
        record = tmp_path / 'vm.json'
        record.write_text(json.dumps({'id': 'vm-3', 'name': 'C', 'region': 'us-east-1', 'instanceSize': 't2.micro'}))
        assert machine_main(['create', '--file', str(record), '--name', 'Override'], store) == 0
        assert store.get('vm-3').name == 'Override'

    def test_create_missing_fields(self, store, capsys):
        assert machine_main(['create', '--id', 'vm-4'], store) == 1
        assert 'Missing required fields' in capsys.readouterr().err

    def test_get_missing(self, store, capsys):
        assert machine_main(['get', 'ghost'], store) == 1

    def test_update_and_filter(self, store, sample_record, capsys):
        store.create(sample_record)
        assert machine_main(['update', 'vm-1', '--region', 'eu-west-1'], store) == 0
        capsys.readouterr()

        assert machine_main(['list', '--region', 'eu-west-1'], store) == 0
        assert [m['id'] for m in json.loads(capsys.readouterr().out)] == ['vm-1']

    def test_delete(self, store, sample_record):
        store.create(sample_record)
        assert machine_main(['delete', 'vm-1'], store) == 0
        assert machine_main(['delete', 'vm-1'], store) == 1


class TestDeployMain:
    """Test deploy command output."""

    def test_missing_machine(self, settings, store, capsys):
        assert deploy_main(['ghost'], settings, store) == 1

    def test_success_json(self, settings, store, sample_record, capsys):
        store.create(sample_record)
        ok = DeploymentResult.succeeded('203.0.113.5', 'vm-key-vm-1', '/d/w', 'ssh -i /d/w/vm-key-vm-1 ubuntu@203.0.113.5')
        with patch('cli.DeploymentOrchestrator') as mock_orch:
            mock_orch.return_value.deploy.return_value = ok
            assert deploy_main(['vm-1', '--json'], settings, store) == 0

        data = json.loads(capsys.readouterr().out)
        assert data['publicIp'] == '203.0.113.5'

    def test_failure_text(self, settings, store, sample_record, capsys):
        store.create(sample_record)
        failed = DeploymentResult.failed('E300', 'Provisioning failed during apply',
                                         destroy_error='Compensating destroy failed, resources may remain')
        with patch('cli.DeploymentOrchestrator') as mock_orch:
            mock_orch.return_value.deploy.return_value = failed
            assert deploy_main(['vm-1'], settings, store) == 1

        err = capsys.readouterr().err
        assert 'E300' in err
        assert 'resources may remain' in err

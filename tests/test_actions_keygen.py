#!/usr/bin/env python3
"""Tests for actions/keygen.py."""

import stat
import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from actions.keygen import GenerateKeyPairAction
from common import CommandResult


def fake_keygen(cmd, cwd=None, timeout=600, env=None):
    """Write the files ssh-keygen would."""
    key_path = Path(cmd[cmd.index('-f') + 1])
    key_path.write_text('PRIVATE')
    key_path.with_name(key_path.name + '.pub').write_text('ssh-rsa AAAA test')
    return CommandResult(0)


class TestGenerateKeyPairAction:
    """Test GenerateKeyPairAction."""

    def test_generates_key_pair(self, settings, tmp_path):
        context = {'workspace_dir': str(tmp_path)}
        with patch('actions.keygen.run_command', side_effect=fake_keygen) as mock_cmd:
            result = GenerateKeyPairAction(key_name='vm-key-vm-1', comment='A').run(settings, context)

        assert result.success
        assert result.context_updates == {
            'key_path': str(tmp_path / 'vm-key-vm-1'),
            'ssh_key_name': 'vm-key-vm-1',
        }
        cmd = mock_cmd.call_args[0][0]
        assert cmd[:6] == ['ssh-keygen', '-q', '-t', 'rsa', '-b', '4096']
        assert cmd[cmd.index('-N') + 1] == ''
        assert cmd[cmd.index('-C') + 1] == 'A'
        assert mock_cmd.call_args[1]['timeout'] == settings.timeouts.keygen
        mode = stat.S_IMODE((tmp_path / 'vm-key-vm-1').stat().st_mode)
        assert mode == 0o600

    def test_failure_without_public_key(self, settings, tmp_path):
        context = {'workspace_dir': str(tmp_path)}
        with patch('actions.keygen.run_command', return_value=CommandResult(1, '', 'bad bits')):
            result = GenerateKeyPairAction(key_name='k').run(settings, context)

        assert not result.success
        assert 'bad bits' in result.message

    def test_zero_exit_but_no_public_key_fails(self, settings, tmp_path):
        context = {'workspace_dir': str(tmp_path)}
        with patch('actions.keygen.run_command', return_value=CommandResult(0)):
            result = GenerateKeyPairAction(key_name='k').run(settings, context)

        assert not result.success
        assert 'no public key' in result.message

    def test_missing_workspace(self, settings):
        result = GenerateKeyPairAction(key_name='k').run(settings, {})
        assert not result.success

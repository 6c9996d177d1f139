#!/usr/bin/env python3
"""Tests for selector.py - natural-language machine selection."""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
import requests
from catalog import PREDEFINED_MACHINES
from selector import build_prompt, parse_choice, select_configuration


def api_response(text, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.text = 'error body'
    resp.json.return_value = {'content': [{'type': 'text', 'text': text}]}
    return resp


@pytest.fixture
def keyed_settings(settings):
    settings.anthropic_api_key = 'sk-test'
    return settings


class TestParseChoice:
    """Test answer parsing."""

    @pytest.mark.parametrize('answer,expected', [
        ('1', 0),
        ('2', 1),
        (' 2.\n', 1),
        ('2 because it is small', 1),
        ('3', None),
        ('0', None),
        ('two', None),
        ('', None),
    ])
    def test_parse(self, answer, expected):
        assert parse_choice(answer, 2) == expected


class TestBuildPrompt:
    def test_lists_machines(self):
        prompt = build_prompt('I need vscode', PREDEFINED_MACHINES)
        assert '1. VSCode Machine' in prompt
        assert '2. Claude machine' in prompt
        assert 'No application' in prompt
        assert '"I need vscode"' in prompt


class TestSelectConfiguration:
    """Test select_configuration."""

    def test_no_api_key_uses_first_machine(self, settings):
        with patch('selector.requests.post') as mock_post:
            choice = select_configuration('anything', settings)
        assert choice['id'] == PREDEFINED_MACHINES[0]['id']
        mock_post.assert_not_called()

    def test_picks_indexed_machine(self, keyed_settings):
        with patch('selector.requests.post', return_value=api_response('2')) as mock_post:
            choice = select_configuration('small box in us-east', keyed_settings)

        assert choice['id'] == 'basic-micro-us-east'
        kwargs = mock_post.call_args[1]
        assert kwargs['headers']['x-api-key'] == 'sk-test'
        assert kwargs['json']['max_tokens'] == 10
        assert kwargs['json']['model'] == keyed_settings.selector_model
        assert kwargs['timeout'] == keyed_settings.selector_timeout

    def test_returns_copy(self, keyed_settings):
        with patch('selector.requests.post', return_value=api_response('1')):
            choice = select_configuration('x', keyed_settings)
        choice['name'] = 'mutated'
        assert PREDEFINED_MACHINES[0]['name'] != 'mutated'

    def test_invalid_index_falls_back(self, keyed_settings):
        with patch('selector.requests.post', return_value=api_response('7')):
            assert select_configuration('x', keyed_settings)['id'] == PREDEFINED_MACHINES[0]['id']

    def test_http_error_falls_back(self, keyed_settings):
        with patch('selector.requests.post', return_value=api_response('2', status=529)):
            assert select_configuration('x', keyed_settings)['id'] == PREDEFINED_MACHINES[0]['id']

    def test_network_error_falls_back(self, keyed_settings):
        with patch('selector.requests.post', side_effect=requests.exceptions.ConnectionError('down')):
            assert select_configuration('x', keyed_settings)['id'] == PREDEFINED_MACHINES[0]['id']

    def test_malformed_body_falls_back(self, keyed_settings):
        resp = api_response('')
        resp.json.return_value = {'content': []}
        with patch('selector.requests.post', return_value=resp):
            assert select_configuration('x', keyed_settings)['id'] == PREDEFINED_MACHINES[0]['id']

"""Shared pytest fixtures for vm-canvas tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from config import Settings, Timeouts  # noqa: E402
from models import MachineConfiguration  # noqa: E402
from store import MachineStore  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in tmp_path with no waits."""
    return Settings(
        data_dir=tmp_path / 'data',
        deployments_dir=tmp_path / 'deployments',
        settle_delay=0,
        probe_attempts=1,
        probe_interval=0,
        timeouts=Timeouts(),
    )


@pytest.fixture
def store(settings):
    return MachineStore(settings.machines_file)


@pytest.fixture
def sample_record():
    return {
        'id': 'vm-1',
        'name': 'A',
        'region': 'us-west-1',
        'instanceSize': 't2.micro',
        'application': 'none',
    }


@pytest.fixture
def sample_config(sample_record):
    return MachineConfiguration.from_dict(sample_record)

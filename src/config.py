"""Settings management.

Settings are loaded from a YAML file and then overridden from the environment.

Resolution order for the file:
1. $VMCANVAS_CONFIG environment variable
2. ./vm-canvas.yaml in the working directory
3. Built-in defaults (no file)

Environment overrides (applied last):
- VMCANVAS_DATA_DIR, VMCANVAS_DEPLOYMENTS_DIR, VMCANVAS_TOOL
- ANTHROPIC_API_KEY (machine selection)
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

SUPPORTED_TOOLS = ('terraform', 'tofu')
CONFIG_FILENAME = 'vm-canvas.yaml'


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class Timeouts:
    """Per-step timeouts in seconds for external commands."""
    keygen: int = 60
    init: int = 300
    apply: int = 1200
    output: int = 60
    destroy: int = 1200
    copy: int = 120
    exec: int = 1800


@dataclass
class Settings:
    """Runtime settings for the store, orchestrator and server."""
    data_dir: Path = field(default_factory=lambda: Path.cwd() / 'data')
    deployments_dir: Path = field(default_factory=lambda: Path.cwd() / 'deployments')
    tool: str = 'terraform'
    remote_user: str = 'ubuntu'
    remote_script_path: str = '/tmp/setup.sh'
    settle_delay: float = 30.0
    probe_attempts: int = 12
    probe_interval: float = 5.0
    timeouts: Timeouts = field(default_factory=Timeouts)
    bind: str = '0.0.0.0'
    port: int = 3001
    anthropic_api_key: str = field(default='', repr=False)
    selector_model: str = 'claude-3-5-sonnet-20241022'
    selector_endpoint: str = 'https://api.anthropic.com/v1/messages'
    selector_timeout: int = 30
    config_file: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)
        if isinstance(self.deployments_dir, str):
            self.deployments_dir = Path(self.deployments_dir)

    @property
    def machines_file(self) -> Path:
        return self.data_dir / 'machines.json'

    def validate(self) -> None:
        """Raise ConfigError on values the orchestrator cannot use."""
        if self.tool not in SUPPORTED_TOOLS:
            raise ConfigError(
                f"Unsupported provisioning tool '{self.tool}' "
                f"(expected one of: {', '.join(SUPPORTED_TOOLS)})"
            )
        for f in fields(self.timeouts):
            if getattr(self.timeouts, f.name) <= 0:
                raise ConfigError(f"timeouts.{f.name} must be positive")
        if self.settle_delay < 0:
            raise ConfigError("settle_delay must not be negative")
        if self.probe_attempts < 1:
            raise ConfigError("probe_attempts must be at least 1")
        if not 0 < self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}")


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def find_config_file() -> Optional[Path]:
    """Locate the settings file, or None when running on defaults."""
    if env_path := os.environ.get('VMCANVAS_CONFIG'):
        path = Path(env_path)
        if path.is_file():
            return path
        raise ConfigError(f"VMCANVAS_CONFIG={env_path} does not exist")

    local = Path.cwd() / CONFIG_FILENAME
    if local.is_file():
        return local
    return None


def _apply_file(settings: Settings, data: dict, path: Path) -> None:
    """Merge a parsed settings mapping into settings."""
    data = dict(data)
    base_dir = path.parent

    timeouts = data.pop('timeouts', None) or {}
    server = data.pop('server', None) or {}
    selector = data.pop('selector', None) or {}

    simple = {
        'data_dir', 'deployments_dir', 'tool', 'remote_user', 'remote_script_path',
        'settle_delay', 'probe_attempts', 'probe_interval',
    }
    unknown = sorted(set(data) - simple)
    if unknown:
        raise ConfigError(f"Unknown settings in {path}: {', '.join(unknown)}")

    for key, value in data.items():
        if key in ('data_dir', 'deployments_dir'):
            value = Path(value)
            if not value.is_absolute():
                value = base_dir / value
        setattr(settings, key, value)

    known_timeouts = {f.name for f in fields(Timeouts)}
    for key, value in timeouts.items():
        if key not in known_timeouts:
            raise ConfigError(f"Unknown timeout in {path}: {key}")
        setattr(settings.timeouts, key, int(value))

    if 'bind' in server:
        settings.bind = str(server['bind'])
    if 'port' in server:
        settings.port = int(server['port'])

    if 'model' in selector:
        settings.selector_model = str(selector['model'])
    if 'endpoint' in selector:
        settings.selector_endpoint = str(selector['endpoint'])
    if 'timeout' in selector:
        settings.selector_timeout = int(selector['timeout'])


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from file and environment.

    Args:
        path: Explicit settings file (skips discovery)

    Raises:
        ConfigError: If the file is invalid or a value is unusable
    """
    settings = Settings()

    if path is None:
        path = find_config_file()
    elif not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")

    if path is not None:
        _apply_file(settings, _parse_yaml(path), path)
        settings.config_file = path

    if data_dir := os.environ.get('VMCANVAS_DATA_DIR'):
        settings.data_dir = Path(data_dir)
    if deployments_dir := os.environ.get('VMCANVAS_DEPLOYMENTS_DIR'):
        settings.deployments_dir = Path(deployments_dir)
    if tool := os.environ.get('VMCANVAS_TOOL'):
        settings.tool = tool
    if api_key := os.environ.get('ANTHROPIC_API_KEY'):
        settings.anthropic_api_key = api_key

    # Workspaces run the tool with their own cwd, so paths rendered into them must be absolute
    settings.data_dir = settings.data_dir.resolve()
    settings.deployments_dir = settings.deployments_dir.resolve()

    settings.validate()
    return settings

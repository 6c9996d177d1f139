"""Common utilities and types for deployment automation."""

import logging
import shlex
import socket
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Fresh hosts are recreated on every deploy, so their host keys are never known
SSH_OPTS = [
    '-o', 'StrictHostKeyChecking=no',
    '-o', 'UserKnownHostsFile=/dev/null',
    '-o', 'LogLevel=ERROR',
]


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)


@dataclass
class CommandResult:
    """Captured outcome of an external command.

    A non-zero exit or a timeout is a failed result, not an exception.
    """
    returncode: int
    stdout: str = ''
    stderr: str = ''
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def error_text(self) -> str:
        """Best available failure description (stderr, then stdout)."""
        text = self.stderr.strip() or self.stdout.strip()
        if text:
            return text
        if self.timed_out:
            return 'timed out'
        return f'exit code {self.returncode}'

    def __iter__(self):
        # Allows `rc, out, err = run_command(...)`
        return iter((self.returncode, self.stdout, self.stderr))


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    env: Optional[dict] = None
) -> CommandResult:
    """Run a command and capture its output."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return CommandResult(result.returncode, result.stdout, result.stderr)
    except subprocess.TimeoutExpired:
        return CommandResult(-1, '', f'Command timed out after {timeout}s', timed_out=True)
    except OSError as e:
        return CommandResult(-1, '', str(e))


def run_ssh(
    host: str,
    command: str,
    key_path: Path,
    user: str = 'ubuntu',
    timeout: int = 60
) -> CommandResult:
    """Run command over SSH with a private key."""
    cmd = (
        ['ssh', '-i', str(key_path)] + SSH_OPTS
        + ['-o', f'ConnectTimeout={min(timeout, 30)}', f'{user}@{host}', command]
    )
    return run_command(cmd, timeout=timeout)


def run_scp(
    local_path: Path,
    host: str,
    remote_path: str,
    key_path: Path,
    user: str = 'ubuntu',
    timeout: int = 120
) -> CommandResult:
    """Copy a local file to a remote host over SCP."""
    cmd = (
        ['scp', '-i', str(key_path)] + SSH_OPTS
        + ['-o', f'ConnectTimeout={min(timeout, 30)}', str(local_path), f'{user}@{host}:{remote_path}']
    )
    return run_command(cmd, timeout=timeout)


def ssh_command_for(host: str, key_path: Path, user: str = 'ubuntu') -> str:
    """Build the command line an operator uses to reach a deployed host."""
    return f'ssh -i {shlex.quote(str(key_path))} {user}@{host}'


def wait_for_port(host: str, port: int = 22, attempts: int = 10, interval: float = 5.0) -> bool:
    """Poll a TCP port until it accepts connections or attempts run out."""
    logger.debug(f"Waiting for {host}:{port}...")
    for attempt in range(1, attempts + 1):
        try:
            with socket.create_connection((host, port), timeout=5):
                logger.debug(f"{host}:{port} reachable (attempt {attempt})")
                return True
        except (OSError, ValueError):
            if attempt < attempts:
                time.sleep(interval)
    return False

"""SSH-related actions for bootstrapping a new host."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from common import ActionResult, run_scp, run_ssh, wait_for_port
from config import Settings

logger = logging.getLogger(__name__)


def _host_and_key(context: dict) -> tuple[Optional[str], Optional[Path]]:
    key = context.get('key_path')
    return context.get('public_ip'), Path(key) if key else None


@dataclass
class SettleAction:
    """Wait out boot-time initialization, then probe the SSH port."""
    name: str = 'settle'
    port: int = 22

    def run(self, settings: Settings, context: dict) -> ActionResult:
        """Sleep the settle delay and wait for the port to accept connections."""
        start = time.time()

        host = context.get('public_ip')
        if not host:
            return ActionResult(
                success=False,
                message="No public_ip in context",
                duration=time.time() - start
            )

        if settings.settle_delay:
            logger.info(f"[{self.name}] Waiting {settings.settle_delay:.0f}s for {host} to boot...")
            time.sleep(settings.settle_delay)

        if not wait_for_port(host, self.port, attempts=settings.probe_attempts,
                             interval=settings.probe_interval):
            return ActionResult(
                success=False,
                message=f"Timeout waiting for {host}:{self.port}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"{host}:{self.port} reachable",
            duration=time.time() - start
        )


@dataclass
class CopyScriptAction:
    """Copy the setup script to the host."""
    name: str = 'copy-script'

    def run(self, settings: Settings, context: dict) -> ActionResult:
        start = time.time()

        host, key_path = _host_and_key(context)
        script = context.get('script_path')
        if not host or not key_path or not script:
            return ActionResult(
                success=False,
                message="Missing public_ip, key_path or script_path in context",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Copying {Path(script).name} to {host}:{settings.remote_script_path}...")
        result = run_scp(Path(script), host, settings.remote_script_path, key_path,
                         user=settings.remote_user, timeout=settings.timeouts.copy)
        if not result.ok:
            return ActionResult(
                success=False,
                message=f"Copy failed: {result.error_text()}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"Script copied to {settings.remote_script_path}",
            duration=time.time() - start
        )


@dataclass
class RunScriptAction:
    """Run the copied setup script with sudo."""
    name: str = 'run-script'

    def run(self, settings: Settings, context: dict) -> ActionResult:
        start = time.time()

        host, key_path = _host_and_key(context)
        if not host or not key_path:
            return ActionResult(
                success=False,
                message="Missing public_ip or key_path in context",
                duration=time.time() - start
            )

        remote = settings.remote_script_path
        logger.info(f"[{self.name}] Running {remote} on {host}...")
        result = run_ssh(host, f'chmod +x {remote} && sudo {remote}', key_path,
                         user=settings.remote_user, timeout=settings.timeouts.exec)
        if not result.ok:
            return ActionResult(
                success=False,
                message=f"Setup script failed: {result.error_text()}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"Setup script completed: {result.stdout.strip()[-100:]}",
            duration=time.time() - start
        )


class Bootstrapper:
    """Settle, copy and run the setup script on a freshly provisioned host.

    Failures are returned, never raised: the host exists and is reachable by
    the caller even if the requested application did not install.
    """

    def __init__(self, settings: Settings, report=None):
        self.settings = settings
        self.report = report

    def bootstrap(self, context: dict) -> ActionResult:
        """Run settle, copy and exec in order, stopping at the first failure."""
        start = time.time()
        for phase, action in (
            ('settle', SettleAction()),
            ('copy', CopyScriptAction()),
            ('exec', RunScriptAction()),
        ):
            result = action.run(self.settings, context)
            if self.report is not None:
                if result.success:
                    self.report.pass_phase(phase, result.message, result.duration)
                else:
                    self.report.fail_phase(phase, result.message, result.duration)
            if not result.success:
                return ActionResult(
                    success=False,
                    message=result.message,
                    duration=time.time() - start,
                    context_updates={'failed_phase': phase}
                )

        return ActionResult(
            success=True,
            message="Bootstrap completed",
            duration=time.time() - start
        )

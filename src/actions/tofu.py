"""Provisioning tool actions (terraform or OpenTofu).

Each action runs one lifecycle command inside a deployment workspace. The
Provisioner sequences them for a single attempt and owns the compensating
destroy: once apply has been attempted, any failure in the same attempt is
followed by exactly one destroy before the error is reported.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from common import ActionResult, run_command
from config import Settings
from errors import ProvisioningError

logger = logging.getLogger(__name__)


def _workspace(context: dict) -> Optional[Path]:
    path = context.get('workspace_dir')
    return Path(path) if path else None


def _missing_workspace(name: str, start: float) -> ActionResult:
    return ActionResult(
        success=False,
        message=f"[{name}] No workspace_dir in context",
        duration=time.time() - start
    )


@dataclass
class TofuInitAction:
    """Prepare the tool's local state and providers."""
    name: str = 'tofu-init'

    def run(self, settings: Settings, context: dict) -> ActionResult:
        start = time.time()
        workspace = _workspace(context)
        if workspace is None:
            return _missing_workspace(self.name, start)

        logger.info(f"[{self.name}] Running {settings.tool} init in {workspace}...")
        result = run_command(
            [settings.tool, 'init', '-input=false', '-no-color'],
            cwd=workspace, timeout=settings.timeouts.init
        )
        if not result.ok:
            return ActionResult(
                success=False,
                message=f"{settings.tool} init failed: {result.error_text()}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=f"{settings.tool} init completed",
            duration=time.time() - start
        )


@dataclass
class TofuApplyAction:
    """Create the declared infrastructure."""
    name: str = 'tofu-apply'

    def run(self, settings: Settings, context: dict) -> ActionResult:
        start = time.time()
        workspace = _workspace(context)
        if workspace is None:
            return _missing_workspace(self.name, start)

        logger.info(f"[{self.name}] Running {settings.tool} apply in {workspace}...")
        result = run_command(
            [settings.tool, 'apply', '-auto-approve', '-input=false', '-no-color'],
            cwd=workspace, timeout=settings.timeouts.apply
        )
        if not result.ok:
            return ActionResult(
                success=False,
                message=f"{settings.tool} apply failed: {result.error_text()}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=f"{settings.tool} apply completed",
            duration=time.time() - start
        )


@dataclass
class TofuOutputAction:
    """Read one named output into the context."""
    name: str = 'tofu-output'
    key: str = 'public_ip'
    context_key: str = 'public_ip'

    def run(self, settings: Settings, context: dict) -> ActionResult:
        start = time.time()
        workspace = _workspace(context)
        if workspace is None:
            return _missing_workspace(self.name, start)

        result = run_command(
            [settings.tool, 'output', '-raw', '-no-color', self.key],
            cwd=workspace, timeout=settings.timeouts.output
        )
        if not result.ok:
            return ActionResult(
                success=False,
                message=f"{settings.tool} output {self.key} failed: {result.error_text()}",
                duration=time.time() - start
            )

        value = result.stdout.strip()
        if not value:
            return ActionResult(
                success=False,
                message=f"{settings.tool} output {self.key} is empty",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] {self.key} = {value}")
        return ActionResult(
            success=True,
            message=f"{self.key}: {value}",
            duration=time.time() - start,
            context_updates={self.context_key: value}
        )


@dataclass
class TofuDestroyAction:
    """Tear down whatever the workspace state holds."""
    name: str = 'tofu-destroy'

    def run(self, settings: Settings, context: dict) -> ActionResult:
        start = time.time()
        workspace = _workspace(context)
        if workspace is None:
            return _missing_workspace(self.name, start)

        logger.info(f"[{self.name}] Running {settings.tool} destroy in {workspace}...")
        result = run_command(
            [settings.tool, 'destroy', '-auto-approve', '-input=false', '-no-color'],
            cwd=workspace, timeout=settings.timeouts.destroy
        )
        if not result.ok:
            return ActionResult(
                success=False,
                message=f"{settings.tool} destroy failed: {result.error_text()}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=f"{settings.tool} destroy completed",
            duration=time.time() - start
        )


class Provisioner:
    """Runs init, apply and output for one attempt, destroying on failure.

    States: init -> applying -> applied -> outputs_read on success;
    failed (init), or destroyed / destroy_failed after a failed apply or output.
    """

    def __init__(self, settings: Settings, report=None):
        self.settings = settings
        self.report = report
        self.state = 'init'
        self.destroy_attempts = 0

    def _record(self, phase: str, result: ActionResult) -> None:
        if self.report is None:
            return
        if result.success:
            self.report.pass_phase(phase, result.message, result.duration)
        else:
            self.report.fail_phase(phase, result.message, result.duration)

    def provision(self, context: dict) -> str:
        """Create the infrastructure and return its public address.

        Args:
            context: Must hold workspace_dir; receives public_ip on success

        Raises:
            ProvisioningError: With the failing stage; destroy_error is set if
                the compensating destroy also failed
        """
        init = TofuInitAction().run(self.settings, context)
        self._record('init', init)
        if not init.success:
            self.state = 'failed'
            logger.error(init.message)
            # Nothing exists remotely yet
            raise ProvisioningError('init', init.message)

        self.state = 'applying'
        apply = TofuApplyAction().run(self.settings, context)
        self._record('apply', apply)
        if not apply.success:
            self._compensate('apply', apply.message, context)

        self.state = 'applied'
        output = TofuOutputAction().run(self.settings, context)
        self._record('output', output)
        if not output.success:
            self._compensate('output', output.message, context)

        context.update(output.context_updates)
        self.state = 'outputs_read'
        return output.context_updates['public_ip']

    def _compensate(self, stage: str, detail: str, context: dict) -> None:
        """Destroy once after a failed stage, then raise for that stage."""
        logger.error(f"Provisioning failed during {stage}: {detail}")
        logger.info(f"Destroying resources created during {stage}...")

        self.destroy_attempts += 1
        destroy = TofuDestroyAction().run(self.settings, context)
        self._record('destroy', destroy)

        destroy_error = None
        if destroy.success:
            self.state = 'destroyed'
        else:
            self.state = 'destroy_failed'
            destroy_error = destroy.message
            logger.error(f"Compensating destroy failed, resources may remain: {destroy_error}")

        raise ProvisioningError(stage, detail, destroy_error=destroy_error)

"""Deployment orchestration.

One deploy call runs these phases in order, each blocking until its external
command returns:

    workspace -> keygen -> render -> init -> apply -> output -> settle -> copy -> exec

Failures up to and including output fail the attempt (after a compensating
destroy once apply has run). Failures in settle, copy or exec leave the attempt
successful with a bootstrap warning. Workspaces are kept on disk after every
attempt.
"""

import logging
import re
import secrets
import time
from pathlib import Path
from typing import Optional

from actions.keygen import GenerateKeyPairAction
from actions.ssh import Bootstrapper
from actions.tofu import Provisioner
from common import ActionResult, ssh_command_for
from config import Settings
from errors import (
    BootstrapError,
    DeployError,
    KeyGenerationError,
    ProvisioningError,
    WorkspaceError,
)
from models import DEPLOYING, DeploymentResult, MachineConfiguration
from reporting import DeploymentReport
from state import DeploymentTracker, NodeState
from templates import (
    INFRA_FILENAME,
    SCRIPT_FILENAME,
    VARIABLES_FILENAME,
    render_infra_declaration,
    render_setup_script,
    render_variables,
)

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_.-]+')

PIPELINE = ('workspace', 'keygen', 'render', 'init', 'apply', 'output', 'settle', 'copy', 'exec')


def key_name_for(machine_id: str) -> str:
    return f'vm-key-{_UNSAFE_CHARS.sub("-", machine_id)}'


def new_workspace_id(machine_id: str) -> str:
    """Workspace id from machine id, millisecond time and a random suffix."""
    slug = _UNSAFE_CHARS.sub('-', machine_id).strip('-') or 'machine'
    return f'deployment-{slug}-{time.time_ns() // 1_000_000}-{secrets.token_hex(4)}'


class DeploymentOrchestrator:
    """Deploys machine configurations and tracks their status.

    Args:
        settings: Runtime settings (tool, timeouts, directories)
        store: Optional MachineStore; when given, status changes are written back
        tracker: Shared DeploymentTracker (one is created if omitted)
    """

    def __init__(self, settings: Settings, store=None, tracker: Optional[DeploymentTracker] = None):
        self.settings = settings
        self.store = store
        self.tracker = tracker or DeploymentTracker()

    def status(self, machine_id: str) -> Optional[NodeState]:
        return self.tracker.get(machine_id)

    def deploy(self, config: MachineConfiguration) -> DeploymentResult:
        """Deploy one machine; never raises for deployment failures."""
        known_status = config.deployment_status
        record = self.store.get(config.id) if self.store is not None else None
        if record is not None:
            known_status = record.deployment_status

        try:
            node = self.tracker.begin(config.id, known_status, stored=record is not None)
        except DeployError as e:
            logger.warning(f"Deploy of {config.id} rejected: {e}")
            return DeploymentResult.failed(e.code, e.message)

        try:
            logger.info(f"Deploying {config.id} ({config.name}) to {config.region} as {config.instance_size}")
            self._persist(config.id, {'deploymentStatus': DEPLOYING})

            result = self._run(config, node)

            if result.success:
                node.complete(result.public_ip)
                logger.info(f"Deployed {config.id} at {result.public_ip}")
            else:
                node.fail(result.error_message)
                logger.error(f"Deployment of {config.id} failed: {result.error_code}: {result.error_message}")

            self._persist(config.id, result.store_updates())
            return result
        finally:
            self.tracker.release(config.id)

    def _persist(self, machine_id: str, updates: dict) -> None:
        if self.store is None:
            return
        try:
            if self.store.update(machine_id, updates) is None:
                logger.debug(f"{machine_id} not in store, status not persisted")
        except (OSError, DeployError) as e:
            logger.error(f"Failed to persist status for {machine_id}: {e}")

    def create_workspace(self, machine_id: str) -> Path:
        """Create a fresh directory for one attempt.

        Raises:
            WorkspaceError: If the directory cannot be created
        """
        workspace = (self.settings.deployments_dir / new_workspace_id(machine_id)).resolve()
        try:
            workspace.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise WorkspaceError(f"Cannot create workspace {workspace}: {e}") from e
        return workspace

    def write_artifacts(self, config: MachineConfiguration, workspace: Path,
                        key_name: str, key_path: Path) -> Path:
        """Render the infra declaration, variables and setup script into the workspace.

        Returns:
            Path of the executable setup script

        Raises:
            WorkspaceError: If a file cannot be written
        """
        script = workspace / SCRIPT_FILENAME
        try:
            (workspace / INFRA_FILENAME).write_text(
                render_infra_declaration(config, key_name, str(key_path)), encoding='utf-8')
            (workspace / VARIABLES_FILENAME).write_text(render_variables(config), encoding='utf-8')
            script.write_text(render_setup_script(config), encoding='utf-8')
            script.chmod(0o755)
        except OSError as e:
            raise WorkspaceError(f"Cannot write workspace files: {e}") from e
        return script

    def _run(self, config: MachineConfiguration, node: NodeState) -> DeploymentResult:
        report = DeploymentReport(machine_id=config.id, workspace_id='')
        report.start()
        context: dict = {}
        result = None
        try:
            start = time.time()
            workspace = self.create_workspace(config.id)
            node.workspace_id = report.workspace_id = workspace.name
            report.report_dir = workspace
            context['workspace_dir'] = str(workspace)
            report.pass_phase('workspace', str(workspace), time.time() - start)

            key_name = key_name_for(config.id)
            keygen = GenerateKeyPairAction(key_name=key_name, comment=config.name).run(self.settings, context)
            if not keygen.success:
                report.fail_phase('keygen', keygen.message, keygen.duration)
                logger.error(f"{config.id}: {keygen.message}")
                raise KeyGenerationError("SSH key generation failed")
            report.pass_phase('keygen', keygen.message, keygen.duration)
            context.update(keygen.context_updates)
            key_path = Path(context['key_path'])

            start = time.time()
            context['script_path'] = str(self.write_artifacts(config, workspace, key_name, key_path))
            report.pass_phase('render', f"{INFRA_FILENAME}, {VARIABLES_FILENAME}, {SCRIPT_FILENAME}",
                              time.time() - start)

            public_ip = Provisioner(self.settings, report).provision(context)

            warnings = []
            try:
                bootstrap = Bootstrapper(self.settings, report).bootstrap(context)
            except Exception as e:  # pylint: disable=broad-except
                logger.exception(f"{config.id}: bootstrap raised")
                bootstrap = ActionResult(success=False, message=f"{type(e).__name__}: {e}",
                                         context_updates={'failed_phase': 'bootstrap'})
            if not bootstrap.success:
                phase = bootstrap.context_updates.get('failed_phase', 'bootstrap')
                warning = str(BootstrapError(f"Application bootstrap may be incomplete ({phase} failed)"))
                logger.warning(f"{config.id}: bootstrap incomplete on {public_ip}: {bootstrap.message}")
                report.warn(warning)
                warnings.append(warning)

            result = DeploymentResult.succeeded(
                public_ip=public_ip,
                ssh_key_name=key_name,
                deployment_dir=str(workspace),
                ssh_command=ssh_command_for(public_ip, key_path, self.settings.remote_user),
                warnings=warnings,
            )
        except ProvisioningError as e:
            logger.debug(f"{config.id}: {e.stage} output: {e.detail}")
            destroy_error = None
            if e.destroy_error:
                destroy_error = "Compensating destroy failed, resources may remain"
            result = DeploymentResult.failed(e.code, e.message, destroy_error=destroy_error)
        except DeployError as e:
            result = DeploymentResult.failed(e.code, e.message)
        except Exception as e:  # pylint: disable=broad-except
            logger.exception(f"Unexpected error deploying {config.id}")
            result = DeploymentResult.failed('E500', f"Unexpected deployment error: {type(e).__name__}")
        finally:
            for phase in PIPELINE:
                if report.phase_status(phase) is None:
                    report.skip_phase(phase)
            report.finish(result is not None and result.success)
        return result

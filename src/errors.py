"""Deployment error taxonomy.

Every failure that reaches a caller carries a stable code:

    E100  validation (missing or invalid configuration fields)
    E200  key generation
    E300  provisioning (init/apply/output), compensated by destroy
    E400  bootstrap (soft, never fails a deployment)
    E409  a deployment for the machine is already in progress
    E410  status transition not allowed (e.g. re-deploying a deployed machine)
    E500  workspace or internal error
"""

from typing import Optional


class DeployError(Exception):
    """Base exception for deployment errors."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class ValidationError(DeployError):
    """Configuration rejected before any side effect."""

    def __init__(self, message: str, fields: Optional[list[str]] = None):
        self.fields = fields or []
        super().__init__("E100", message)


class DuplicateMachineError(ValidationError):
    """A machine with this id is already stored."""

    def __init__(self, machine_id: str):
        super().__init__(f"Machine already exists: {machine_id}", ["id"])


class KeyGenerationError(DeployError):
    """SSH key pair could not be produced."""

    def __init__(self, message: str):
        super().__init__("E200", message)


class ProvisioningError(DeployError):
    """Provisioning tool failed during init, apply or output.

    ``detail`` holds the tool's own output and is only logged.
    ``destroy_error`` is set when the compensating destroy also failed.
    """

    def __init__(self, stage: str, detail: str = '', destroy_error: Optional[str] = None):
        self.stage = stage
        self.detail = detail
        self.destroy_error = destroy_error
        super().__init__("E300", f"Provisioning failed during {stage}")


class BootstrapError(DeployError):
    """Remote setup did not complete."""

    def __init__(self, message: str):
        super().__init__("E400", message)


class DeploymentInProgressError(DeployError):
    """Another deploy call holds the machine."""

    def __init__(self, machine_id: str):
        super().__init__("E409", f"Deployment already in progress for {machine_id}")


class InvalidTransitionError(DeployError):
    """Requested status change is not allowed."""

    def __init__(self, machine_id: str, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__("E410", f"Machine {machine_id} cannot go from {current} to {requested}")


class WorkspaceError(DeployError):
    """Workspace could not be created or written."""

    def __init__(self, message: str):
        super().__init__("E500", message)

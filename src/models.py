"""Machine configuration and deployment result records.

Records are stored and served with the camelCase keys the canvas uses
(``instanceSize``, ``deploymentStatus``, ...); attributes are snake_case.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Optional

from catalog import APPLICATIONS, INSTANCE_SIZES, REGIONS
from errors import ValidationError

PENDING = 'pending'
DEPLOYING = 'deploying'
DEPLOYED = 'deployed'
FAILED = 'failed'

STATUSES = (PENDING, DEPLOYING, DEPLOYED, FAILED)

# deployed is terminal; failed may be retried
TRANSITIONS = {
    PENDING: {DEPLOYING},
    DEPLOYING: {DEPLOYED, FAILED},
    FAILED: {DEPLOYING},
    DEPLOYED: set(),
}

REQUIRED_FIELDS = ('id', 'name', 'region', 'instanceSize')

# attribute name -> wire key
_WIRE_KEYS = {
    'id': 'id',
    'name': 'name',
    'region': 'region',
    'instance_size': 'instanceSize',
    'application': 'application',
    'is_deployed': 'isDeployed',
    'deployment_status': 'deploymentStatus',
    'public_ip': 'publicIp',
    'ssh_key_name': 'sshKeyName',
    'deployment_dir': 'deploymentDir',
    'ssh_command': 'sshCommand',
}
_ATTR_NAMES = {wire: attr for attr, wire in _WIRE_KEYS.items()}


def can_transition(current: str, requested: str) -> bool:
    return requested in TRANSITIONS.get(current, set())


@dataclass
class MachineConfiguration:
    """A VM node as composed on the canvas.

    Attributes:
        id: Unique, immutable identifier assigned by the creator
        name: Display name (also the instance Name tag)
        region: Deployment region code
        instance_size: Instance type
        application: Software bundle to bootstrap ('none' for the base toolset)
        is_deployed: True once a deployment succeeded
        deployment_status: pending, deploying, deployed or failed
        public_ip, ssh_key_name, deployment_dir, ssh_command: Set on success
    """
    id: str
    name: str
    region: str
    instance_size: str
    application: str = 'none'
    is_deployed: bool = False
    deployment_status: str = PENDING
    public_ip: Optional[str] = None
    ssh_key_name: Optional[str] = None
    deployment_dir: Optional[str] = None
    ssh_command: Optional[str] = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            d[_WIRE_KEYS[f.name]] = value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> 'MachineConfiguration':
        """Build a configuration from a wire record.

        Raises:
            ValidationError: If required fields are missing or values unsupported
        """
        validate_record(data)
        kwargs = {
            _ATTR_NAMES[key]: value
            for key, value in data.items()
            if key in _ATTR_NAMES
        }
        if kwargs.get('application') is None:
            kwargs['application'] = 'none'
        if kwargs.get('deployment_status') is None:
            kwargs['deployment_status'] = PENDING
        kwargs['is_deployed'] = bool(kwargs.get('is_deployed', False))
        return cls(**kwargs)


def validate_record(data: Any, partial: bool = False) -> None:
    """Check a wire record (or a partial update) before it causes side effects.

    Raises:
        ValidationError: On the first class of problem found
    """
    if not isinstance(data, dict):
        raise ValidationError("Machine record must be a JSON object")

    if not partial:
        missing = [key for key in REQUIRED_FIELDS if not data.get(key)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing)

    unsupported = []
    if 'region' in data and data['region'] not in REGIONS:
        unsupported.append('region')
    if 'instanceSize' in data and data['instanceSize'] not in INSTANCE_SIZES:
        unsupported.append('instanceSize')
    if data.get('application') is not None and data['application'] not in APPLICATIONS:
        unsupported.append('application')
    if data.get('deploymentStatus') is not None and data['deploymentStatus'] not in STATUSES:
        unsupported.append('deploymentStatus')
    if data.get('isDeployed') is not None and not isinstance(data['isDeployed'], bool):
        unsupported.append('isDeployed')
    if unsupported:
        raise ValidationError(f"Unsupported values for: {', '.join(unsupported)}", unsupported)

    if not partial and data.get('isDeployed') and (
            data.get('deploymentStatus') != DEPLOYED or not data.get('publicIp')):
        raise ValidationError("isDeployed requires deploymentStatus 'deployed' and a publicIp", ['isDeployed'])


@dataclass
class DeploymentResult:
    """Outcome of one deploy call.

    A success carries all four connection fields; a failure carries an error
    message and code. ``warnings`` lists soft failures such as an incomplete
    bootstrap.
    """
    success: bool
    public_ip: Optional[str] = None
    ssh_key_name: Optional[str] = None
    deployment_dir: Optional[str] = None
    ssh_command: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    destroy_error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def succeeded(cls, public_ip: str, ssh_key_name: str, deployment_dir: str,
                  ssh_command: str, warnings: Optional[list[str]] = None) -> 'DeploymentResult':
        return cls(
            success=True,
            public_ip=public_ip,
            ssh_key_name=ssh_key_name,
            deployment_dir=deployment_dir,
            ssh_command=ssh_command,
            warnings=list(warnings or []),
        )

    @classmethod
    def failed(cls, code: str, message: str, destroy_error: Optional[str] = None) -> 'DeploymentResult':
        return cls(success=False, error_code=code, error_message=message or 'Deployment failed',
                   destroy_error=destroy_error)

    def to_response(self, vm_id: str) -> dict:
        """Flat response shape returned by the deploy endpoint."""
        data: dict[str, Any] = {'success': self.success, 'vmId': vm_id}
        if self.success:
            data['publicIp'] = self.public_ip
            data['sshKeyName'] = self.ssh_key_name
            data['deploymentDir'] = self.deployment_dir
            data['sshCommand'] = self.ssh_command
            if self.warnings:
                data['warnings'] = list(self.warnings)
        else:
            data['error'] = self.error_message
            data['errorCode'] = self.error_code
            if self.destroy_error:
                data['destroyError'] = self.destroy_error
        return data

    def store_updates(self) -> dict:
        """Partial record written back to the store after the attempt."""
        if not self.success:
            return {'deploymentStatus': FAILED, 'isDeployed': False}
        return {
            'isDeployed': True,
            'deploymentStatus': DEPLOYED,
            'publicIp': self.public_ip,
            'sshKeyName': self.ssh_key_name,
            'deploymentDir': self.deployment_dir,
            'sshCommand': self.ssh_command,
        }

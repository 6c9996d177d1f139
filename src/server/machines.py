"""Machine and deploy endpoint handlers.

Each handler returns (response_dict, http_status). CRUD responses use the
envelope {"success": true, "data": ...} or {"success": false, "error": {...}};
deploy keeps its flat result shape.
"""

import logging
from typing import Any, Tuple

import catalog
from errors import DeployError, DuplicateMachineError, ValidationError
from models import MachineConfiguration
from orchestrator import DeploymentOrchestrator
from selector import select_configuration
from store import MachineStore

logger = logging.getLogger(__name__)

# Deploy rejections that are the caller's doing rather than a failed attempt
_CONFLICT_CODES = {"E409", "E410"}


def _ok(data: Any = None) -> dict:
    response: dict[str, Any] = {"success": True}
    if data is not None:
        response["data"] = data
    return response


def _error_response(code: str, message: str) -> dict:
    """Build error response dict."""
    return {"success": False, "error": {"code": code, "message": message}}


def _not_found(machine_id: str) -> Tuple[dict, int]:
    return _error_response("E404", f"Machine not found: {machine_id}"), 404


def handle_list(store: MachineStore) -> Tuple[dict, int]:
    return _ok([m.to_dict() for m in store.list()]), 200


def handle_get(store: MachineStore, machine_id: str) -> Tuple[dict, int]:
    machine = store.get(machine_id)
    if machine is None:
        return _not_found(machine_id)
    return _ok(machine.to_dict()), 200


def handle_create(store: MachineStore, body: Any) -> Tuple[dict, int]:
    """Create a machine; 400 on missing fields, 409 on duplicate id."""
    try:
        machine = store.create(body)
    except DuplicateMachineError as e:
        return _error_response(e.code, e.message), 409
    except ValidationError as e:
        return _error_response(e.code, e.message), 400
    return _ok(machine.to_dict()), 201


def handle_update(store: MachineStore, machine_id: str, body: Any) -> Tuple[dict, int]:
    try:
        machine = store.update(machine_id, body)
    except ValidationError as e:
        return _error_response(e.code, e.message), 400
    if machine is None:
        return _not_found(machine_id)
    return _ok(machine.to_dict()), 200


def handle_delete(store: MachineStore, machine_id: str) -> Tuple[dict, int]:
    if not store.delete(machine_id):
        return _not_found(machine_id)
    return _ok(), 200


def handle_status(orchestrator: DeploymentOrchestrator, store: MachineStore,
                  machine_id: str) -> Tuple[dict, int]:
    """Live deployment state, falling back to the stored status."""
    node = orchestrator.status(machine_id)
    if node is not None:
        return _ok(node.to_dict()), 200

    machine = store.get(machine_id)
    if machine is None:
        return _not_found(machine_id)
    return _ok({"machineId": machine_id, "status": machine.deployment_status, "attempts": 0}), 200


def handle_deploy(orchestrator: DeploymentOrchestrator, body: Any) -> Tuple[dict, int]:
    """Deploy a full configuration record.

    Accepts {"vmConfig": {...}} or the bare record.
    """
    record = body.get("vmConfig", body) if isinstance(body, dict) else body
    vm_id = record.get("id", "") if isinstance(record, dict) else ""

    try:
        config = MachineConfiguration.from_dict(record)
    except ValidationError as e:
        return {"success": False, "vmId": vm_id, "error": e.message, "errorCode": e.code}, 400

    try:
        result = orchestrator.deploy(config)
    except DeployError as e:
        logger.error("Deploy of %s raised %s", config.id, e)
        return {"success": False, "vmId": config.id, "error": e.message, "errorCode": e.code}, 500

    if result.success:
        return result.to_response(config.id), 200
    status = 409 if result.error_code in _CONFLICT_CODES else 500
    return result.to_response(config.id), status


def handle_catalog() -> Tuple[dict, int]:
    return _ok(catalog.to_dict()), 200


def handle_select(settings, body: Any) -> Tuple[dict, int]:
    prompt = body.get("prompt") if isinstance(body, dict) else None
    if not prompt or not isinstance(prompt, str):
        return _error_response("E100", "Missing prompt"), 400
    return _ok(select_configuration(prompt, settings)), 200

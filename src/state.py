"""Per-machine deployment state.

Tracks each machine's status (pending, deploying, deployed, failed) as seen by
concurrent callers, and guards against two deployments of the same machine
running at once.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional

from errors import DeploymentInProgressError, InvalidTransitionError
from models import DEPLOYED, DEPLOYING, FAILED, PENDING, can_transition

logger = logging.getLogger(__name__)


@dataclass
class NodeState:
    """Deployment state of one machine.

    Attributes:
        machine_id: Machine identifier
        status: pending, deploying, deployed or failed
        public_ip: Address once deployed
        workspace_id: Workspace of the latest attempt
        attempts: Number of deploy attempts started
        started_at: Timestamp when the latest attempt started
        completed_at: Timestamp when the latest attempt finished
        error: Error message of the latest failed attempt
    """
    machine_id: str
    status: str = PENDING
    public_ip: Optional[str] = None
    workspace_id: Optional[str] = None
    attempts: int = 0
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    error: Optional[str] = None

    def _move(self, requested: str) -> None:
        if not can_transition(self.status, requested):
            raise InvalidTransitionError(self.machine_id, self.status, requested)
        self.status = requested

    def start(self) -> None:
        self._move(DEPLOYING)
        self.attempts += 1
        self.started_at = time.time()
        self.completed_at = None
        self.error = None

    def complete(self, public_ip: str) -> None:
        self._move(DEPLOYED)
        self.completed_at = time.time()
        self.public_ip = public_ip

    def fail(self, error: str) -> None:
        self._move(FAILED)
        self.completed_at = time.time()
        self.error = error

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return self.completed_at - self.started_at
        return None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            'machineId': self.machine_id,
            'status': self.status,
            'attempts': self.attempts,
        }
        if self.public_ip is not None:
            d['publicIp'] = self.public_ip
        if self.workspace_id is not None:
            d['workspaceId'] = self.workspace_id
        if self.started_at is not None:
            d['startedAt'] = self.started_at
        if self.completed_at is not None:
            d['completedAt'] = self.completed_at
        if self.error is not None:
            d['error'] = self.error
        return d


class DeploymentTracker:
    """Thread-safe registry of node states with one in-flight deploy per machine."""

    def __init__(self):
        self._lock = threading.Lock()
        self._nodes: dict[str, NodeState] = {}
        self._active: set[str] = set()

    def get(self, machine_id: str) -> Optional[NodeState]:
        with self._lock:
            return self._nodes.get(machine_id)

    def begin(self, machine_id: str, known_status: str = PENDING, stored: bool = False) -> NodeState:
        """Claim a machine and move it to deploying.

        Args:
            machine_id: Machine to deploy
            known_status: Status from the caller's record
            stored: True when known_status comes from the machine store, which
                then overrides whatever the tracker remembers for this id

        Raises:
            DeploymentInProgressError: If another deploy holds the machine
            InvalidTransitionError: If the machine is already deployed
        """
        # Nothing outside _active is in flight, so a deploying status is a dead attempt
        status = FAILED if known_status == DEPLOYING else known_status

        with self._lock:
            if machine_id in self._active:
                raise DeploymentInProgressError(machine_id)

            node = self._nodes.get(machine_id)
            if node is None:
                node = NodeState(machine_id=machine_id, status=status)
            elif stored and node.status != status:
                logger.debug(f"{machine_id}: stored status {status} replaces {node.status}")
                node.status = status
                node.public_ip = None
                node.error = None

            node.start()
            self._nodes[machine_id] = node
            self._active.add(machine_id)

        logger.debug(f"Claimed {machine_id} (attempt {node.attempts})")
        return node

    def release(self, machine_id: str) -> None:
        with self._lock:
            self._active.discard(machine_id)
        logger.debug(f"Released {machine_id}")

"""Machine configuration store.

A single JSON file holds an array of machine records. Every mutation reads
the whole file, modifies it and rewrites it. Writes are serialized within one
process; across processes the last write wins.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

from errors import DuplicateMachineError, ValidationError
from models import PENDING, MachineConfiguration, can_transition, validate_record

logger = logging.getLogger(__name__)


class MachineStore:
    """CRUD over machines.json, keyed by machine id."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _ensure_file(self) -> None:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write([])

    def _read(self) -> list[dict]:
        self._ensure_file()
        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read machines from {self.path}: {e}")
            return []
        if not isinstance(data, list):
            logger.error(f"{self.path} does not hold a list, ignoring contents")
            return []
        return data

    def _write(self, records: list[dict]) -> None:
        # Write to a sibling temp file and rename so readers never see half a file
        fd, tmp = tempfile.mkstemp(prefix='.machines-', suffix='.json', dir=self.path.parent)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(records, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, machine_id: str) -> Optional[MachineConfiguration]:
        """Get a machine by id, or None if absent."""
        for record in self._read():
            if record.get('id') == machine_id:
                return MachineConfiguration.from_dict(record)
        return None

    def create(self, record: dict) -> MachineConfiguration:
        """Store a new machine.

        Raises:
            ValidationError: If required fields are missing, values are
                unsupported, or the id is already taken
        """
        machine = MachineConfiguration.from_dict(record)
        with self._lock:
            records = self._read()
            if any(r.get('id') == machine.id for r in records):
                raise DuplicateMachineError(machine.id)
            records.append(machine.to_dict())
            self._write(records)
        logger.info(f"Created machine {machine.id} ({machine.name})")
        return machine

    def update(self, machine_id: str, updates: dict) -> Optional[MachineConfiguration]:
        """Merge the provided fields into a stored machine.

        Returns:
            The updated machine, or None if absent

        Raises:
            ValidationError: If updates carry unsupported values, change the id,
                move the status along a disallowed transition or leave the
                record inconsistent
        """
        validate_record(updates, partial=True)
        if 'id' in updates and updates['id'] != machine_id:
            raise ValidationError("Machine id cannot be changed", ['id'])

        with self._lock:
            records = self._read()
            for index, record in enumerate(records):
                if record.get('id') == machine_id:
                    current = record.get('deploymentStatus', PENDING)
                    requested = updates.get('deploymentStatus', current)
                    if requested != current and not can_transition(current, requested):
                        raise ValidationError(
                            f"Machine {machine_id} cannot go from {current} to {requested}", ['deploymentStatus'])
                    merged = {**record, **updates}
                    # None clears an optional field
                    merged = {k: v for k, v in merged.items() if v is not None}
                    machine = MachineConfiguration.from_dict(merged)
                    records[index] = machine.to_dict()
                    self._write(records)
                    logger.debug(f"Updated machine {machine_id}: {sorted(updates)}")
                    return machine
        return None

    def delete(self, machine_id: str) -> bool:
        """Delete a machine. Returns False if it was absent."""
        with self._lock:
            records = self._read()
            remaining = [r for r in records if r.get('id') != machine_id]
            if len(remaining) == len(records):
                return False
            self._write(remaining)
        logger.info(f"Deleted machine {machine_id}")
        return True

    def list_by_status(self, status: str) -> list[MachineConfiguration]:
        return [m for m in self.list() if m.deployment_status == status]

    def list_by_region(self, region: str) -> list[MachineConfiguration]:
        return [m for m in self.list() if m.region == region]

    def clear(self) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write([])

    # Defined last so the builtin `list` stays usable in annotations above
    def list(self) -> 'list[MachineConfiguration]':
        return [MachineConfiguration.from_dict(r) for r in self._read()]

"""
File-based store for tenant instances, controller state and config snapshots.

Layout under the data directory:

    instances.json                  list of WallInstance records
    states/<instance>/<group>.json  persisted ControllerState (one per group)
    snapshots/<instance>.json       ConfigSnapshot served to screens
"""

import asyncio
import json
import os
import re
import shutil
import time
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from multiwall.bases.models import ConfigSnapshot, ControllerState, WallInstance
from multiwall.logger import get_logger

log = get_logger(__name__)

INSTANCES_FILE = "instances.json"
STATES_DIR = "states"
SNAPSHOTS_DIR = "snapshots"

_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


class StorageError(Exception):
    """Raised when the store cannot read or write its files."""

    pass


class JsonFileStore:
    """
    JSON-file store.

    Every write goes to a temporary file first and is moved into place with
    os.replace, so readers never see a half-written file. A single asyncio.Lock
    serializes read-modify-write cycles on instances.json.
    """

    def __init__(self, data_dir: str | Path):
        """
        Initialize the store with a data directory.

        Args:
            data_dir: Path to the directory where data files will be stored
        """
        self._data_dir = Path(data_dir).resolve()
        self._states_dir = self._data_dir / STATES_DIR
        self._snapshots_dir = self._data_dir / SNAPSHOTS_DIR
        self._states_dir.mkdir(parents=True, exist_ok=True)
        self._snapshots_dir.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

        log.info(f"JsonFileStore initialized with data directory: {self._data_dir}")

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    # --- Raw file access ---

    def _read(self, path: Path) -> Any | None:
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.error(f"Error reading or decoding file {path}: {e}")
            raise StorageError(f"Failed to read data: {e}") from e

    def _write(self, path: Path, value: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(f"{path.suffix}.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2)
            os.replace(temp_path, path)
        except (TypeError, OSError) as e:
            log.error(f"Error writing to file {path}: {e}")
            raise StorageError(f"Failed to write data: {e}") from e

    def _remove(self, path: Path) -> bool:
        if not path.exists():
            return False
        try:
            if path.is_dir():
                shutil.rmtree(path)
            else:
                os.remove(path)
        except OSError as e:
            log.error(f"Error deleting file {path}: {e}")
            raise StorageError(f"Failed to delete data: {e}") from e
        return True

    @staticmethod
    def _check_id(value: str, kind: str = "instance") -> str:
        if not _ID_PATTERN.match(value or ""):
            raise StorageError(f"Invalid {kind} id: {value!r}")
        return value

    def _state_path(self, instance_id: str, group_id: str) -> Path:
        return (
            self._states_dir
            / self._check_id(instance_id)
            / f"{self._check_id(group_id, 'group')}.json"
        )

    # --- Instances ---

    def _load_instances(self) -> list[WallInstance]:
        data = self._read(self._data_dir / INSTANCES_FILE) or []
        try:
            return [WallInstance.model_validate(item) for item in data]
        except (ValidationError, TypeError) as e:
            raise StorageError(f"Corrupt {INSTANCES_FILE}: {e}") from e

    def _store_instances(self, instances: list[WallInstance]) -> None:
        self._write(
            self._data_dir / INSTANCES_FILE, [i.to_wire() for i in instances]
        )

    async def list_instances(self) -> list[WallInstance]:
        async with self._lock:
            return self._load_instances()

    async def get_instance(self, instance_id: str) -> WallInstance | None:
        async with self._lock:
            return next(
                (i for i in self._load_instances() if i.id == instance_id), None
            )

    async def create_instance(self, instance_id: str, name: str) -> WallInstance:
        self._check_id(instance_id)
        async with self._lock:
            instances = self._load_instances()
            if any(i.id == instance_id for i in instances):
                raise StorageError(f'Instance with id "{instance_id}" already exists')
            now = time.time() * 1000
            instance = WallInstance(id=instance_id, name=name, created_at=now, updated_at=now)
            instances.append(instance)
            self._store_instances(instances)
        log.info(f"Created instance {instance_id}")
        return instance

    async def update_instance(self, instance_id: str, *, name: str) -> WallInstance:
        async with self._lock:
            instances = self._load_instances()
            for idx, instance in enumerate(instances):
                if instance.id == instance_id:
                    updated = instance.model_copy(
                        update={"name": name, "updated_at": time.time() * 1000}
                    )
                    instances[idx] = updated
                    self._store_instances(instances)
                    return updated
        raise StorageError(f'Instance with id "{instance_id}" not found')

    async def delete_instance(self, instance_id: str) -> None:
        """Delete an instance together with its state and snapshot files."""
        async with self._lock:
            instances = self._load_instances()
            remaining = [i for i in instances if i.id != instance_id]
            if len(remaining) == len(instances):
                raise StorageError(f'Instance with id "{instance_id}" not found')
            self._store_instances(remaining)
        self._remove(self._states_dir / self._check_id(instance_id))
        self._remove(self._snapshots_dir / f"{instance_id}.json")
        log.info(f"Deleted instance {instance_id}")

    # --- Controller state ---

    async def get_state(
        self, instance_id: str, group_id: str
    ) -> ControllerState | None:
        data = self._read(self._state_path(instance_id, group_id))
        if data is None:
            return None
        try:
            return ControllerState.model_validate(data)
        except ValidationError as e:
            raise StorageError(f"Corrupt state for {instance_id}/{group_id}: {e}") from e

    async def save_state(
        self, instance_id: str, group_id: str, state: ControllerState
    ) -> None:
        self._write(self._state_path(instance_id, group_id), state.to_wire())

    # --- Config snapshots ---

    async def get_snapshot(self, instance_id: str) -> ConfigSnapshot | None:
        data = self._read(self._snapshots_dir / f"{self._check_id(instance_id)}.json")
        if data is None:
            return None
        try:
            return ConfigSnapshot.model_validate(data)
        except ValidationError as e:
            raise StorageError(f"Corrupt snapshot for {instance_id}: {e}") from e

    async def save_snapshot(self, instance_id: str, snapshot: ConfigSnapshot) -> None:
        self._write(
            self._snapshots_dir / f"{self._check_id(instance_id)}.json",
            snapshot.to_wire(),
        )

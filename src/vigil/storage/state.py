"""Durable key/value state shared by the monitor components.

The store is the only synchronization point for persisted state: callers
never lock, every public method is a critical section guarded by the store.
Slots are single-writer (the tracker writes the location, the sampler writes
the sensor sample) and multi-reader; readers must tolerate ``None``.
"""
from __future__ import annotations

import copy
import json
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from threading import RLock
from typing import Any

import structlog

from vigil.events import LocationFix
from vigil.sensor.sample import SensorSample

logger = structlog.get_logger(__name__)

# Logical keys
LAST_LOCATION = "lastLocationData"
LAST_SENSOR_DATA = "lastSensorData"
LAST_MOVEMENT_TIME = "lastMovementTime"
LAST_FALL_DETECTION = "lastFallDetection"
OFFLINE_QUEUE = "offlineQueue"
LAST_INACTIVITY_ALERT = "lastInactivityAlert"
TRACKING_ACTIVE = "trackingActive"
REGISTERED_TASKS = "registeredTasks"


class StateStore:
	"""JSON-file backed key/value store. ``path=None`` keeps state in memory only."""

	def __init__(self, path: str | Path | None = None) -> None:
		self.path = Path(path) if path is not None else None
		self._lock = RLock()
		self._data: dict[str, Any] = {}
		self._writes = 0

		if self.path is not None:
			self.path.parent.mkdir(parents=True, exist_ok=True)
			self._data = self._load(self.path)

		logger.debug("state_store_init", path=str(self.path) if self.path else None, keys=len(self._data))

	@property
	def is_persistent(self) -> bool:
		return self.path is not None

	@property
	def writes(self) -> int:
		"""Number of commits performed since construction."""
		return self._writes

	def _load(self, path: Path) -> dict[str, Any]:
		if not path.exists():
			return {}
		try:
			with open(path, encoding="utf-8") as f:
				data = json.load(f)
		except (OSError, json.JSONDecodeError) as e:
			logger.error("state_store_load_failed", path=str(path), error=str(e))
			return {}
		if not isinstance(data, dict):
			logger.error("state_store_bad_format", path=str(path), type=type(data).__name__)
			return {}
		return data

	def _commit(self) -> None:
		self._writes += 1
		if self.path is None:
			return
		fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
		try:
			with os.fdopen(fd, "w", encoding="utf-8") as f:
				json.dump(self._data, f)
			os.replace(tmp, self.path)
		except BaseException:
			if os.path.exists(tmp):
				os.unlink(tmp)
			raise

	def reload(self) -> None:
		"""Re-read the backing file, discarding in-memory state."""
		with self._lock:
			if self.path is not None:
				self._data = self._load(self.path)

	def get(self, key: str, default: Any = None) -> Any:
		with self._lock:
			if key not in self._data:
				return default
			return copy.deepcopy(self._data[key])

	def set(self, key: str, value: Any) -> None:
		with self._lock:
			self._data[key] = copy.deepcopy(value)
			self._commit()

	def update(self, values: dict[str, Any]) -> None:
		"""Write several keys in a single commit."""
		with self._lock:
			for key, value in values.items():
				self._data[key] = copy.deepcopy(value)
			self._commit()

	def delete(self, key: str) -> None:
		with self._lock:
			if key in self._data:
				del self._data[key]
				self._commit()

	def mutate(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
		"""Atomically replace ``key`` with ``fn(current)``. Returns the new value."""
		with self._lock:
			current = copy.deepcopy(self._data.get(key, default))
			new_value = fn(current)
			self._data[key] = copy.deepcopy(new_value)
			self._commit()
			return new_value

	def keys(self) -> list[str]:
		with self._lock:
			return list(self._data)

	# Typed slots

	def get_last_location(self) -> LocationFix | None:
		data = self.get(LAST_LOCATION)
		if not data:
			return None
		try:
			return LocationFix.from_dict(data)
		except (KeyError, TypeError, ValueError) as e:
			logger.warning("invalid_location_in_store", data=data, error=str(e))
			return None

	def set_last_location(self, fix: LocationFix) -> None:
		self.set(LAST_LOCATION, fix.to_dict())

	def get_last_sensor_sample(self) -> SensorSample | None:
		data = self.get(LAST_SENSOR_DATA)
		if not data:
			return None
		try:
			return SensorSample.from_dict(data)
		except (KeyError, TypeError, ValueError) as e:
			logger.warning("invalid_sensor_sample_in_store", data=data, error=str(e))
			return None

	def set_last_sensor_sample(self, sample: SensorSample) -> None:
		self.set(LAST_SENSOR_DATA, sample.to_dict())

	def get_last_movement_time(self) -> float | None:
		value = self.get(LAST_MOVEMENT_TIME)
		return float(value) if value is not None else None

	def set_last_movement_time(self, timestamp: float) -> None:
		self.set(LAST_MOVEMENT_TIME, float(timestamp))

	def get_last_fall(self) -> dict[str, Any] | None:
		return self.get(LAST_FALL_DETECTION)

	def set_last_fall(self, record: dict[str, Any]) -> None:
		self.set(LAST_FALL_DETECTION, record)

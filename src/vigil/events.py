"""Activity event model shared by detectors and the dispatcher.

Events are immutable once created. ``to_payload`` produces the exact JSON
body accepted by the ingestion endpoint; ``created_at`` stays on the device.
"""
from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from vigil.errors import InvalidPayload


class EventType(str, Enum):
	LOCATION_UPDATE = "LOCATION_UPDATE"
	FALL_DETECTED = "FALL_DETECTED"
	INACTIVITY_ALERT = "INACTIVITY_ALERT"
	EMERGENCY_BUTTON_PRESSED = "EMERGENCY_BUTTON_PRESSED"


@dataclass(frozen=True)
class LocationFix:
	"""A single position fix. Timestamp is epoch seconds."""
	latitude: float
	longitude: float
	accuracy: float | None = None
	timestamp: float = field(default_factory=time.time)

	@classmethod
	def unknown(cls) -> LocationFix:
		"""Placeholder used when no fix has been recorded yet."""
		return cls(latitude=0.0, longitude=0.0, accuracy=0.0, timestamp=0.0)

	@property
	def is_valid(self) -> bool:
		return (
			_is_number(self.latitude)
			and _is_number(self.longitude)
			and -90.0 <= self.latitude <= 90.0
			and -180.0 <= self.longitude <= 180.0
			and (self.accuracy is None or (_is_number(self.accuracy) and self.accuracy >= 0))
		)

	def to_wire(self) -> dict[str, Any]:
		return {
			"latitude": self.latitude,
			"longitude": self.longitude,
			"accuracy": self.accuracy,
		}

	def to_dict(self) -> dict[str, Any]:
		return {**self.to_wire(), "timestamp": self.timestamp}

	@classmethod
	def from_dict(cls, data: dict[str, Any]) -> LocationFix:
		return cls(
			latitude=float(data["latitude"]),
			longitude=float(data["longitude"]),
			accuracy=None if data.get("accuracy") is None else float(data["accuracy"]),
			timestamp=float(data.get("timestamp", 0.0)),
		)


def _is_number(value: Any) -> bool:
	return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class ActivityEvent:
	"""Base for all event variants."""
	type: ClassVar[EventType]

	user_id: int
	location: LocationFix
	created_at: float = field(default_factory=time.time, kw_only=True)

	def _extra_fields(self) -> dict[str, Any]:
		return {}

	def to_payload(self) -> dict[str, Any]:
		"""Wire body: user_id, type, location, then variant fields."""
		return {
			"user_id": self.user_id,
			"type": self.type.value,
			"location": self.location.to_wire(),
			**self._extra_fields(),
		}

	def validate(self) -> None:
		"""Raise InvalidPayload if this event must not be submitted."""
		if not isinstance(self.user_id, int) or isinstance(self.user_id, bool) or self.user_id <= 0:
			raise InvalidPayload(f"Invalid user_id: {self.user_id!r}")
		if not isinstance(self.location, LocationFix):
			raise InvalidPayload("Event has no location")
		if not self.location.is_valid:
			raise InvalidPayload(
				f"Location out of range: latitude={self.location.latitude}, "
				f"longitude={self.location.longitude}, accuracy={self.location.accuracy}"
			)
		for name, value in self._extra_fields().items():
			if not _is_number(value):
				raise InvalidPayload(f"{name} must be a finite number, got {value!r}")
			if value < 0:
				raise InvalidPayload(f"{name} must not be negative, got {value!r}")


@dataclass(frozen=True)
class LocationUpdate(ActivityEvent):
	type: ClassVar[EventType] = EventType.LOCATION_UPDATE

	steps: int = 0
	distance_km: float = 0.0

	def _extra_fields(self) -> dict[str, Any]:
		return {"steps": self.steps, "distance_km": self.distance_km}


@dataclass(frozen=True)
class FallDetected(ActivityEvent):
	type: ClassVar[EventType] = EventType.FALL_DETECTED

	fall_intensity: float = 0.0
	inactive_duration_sec: int = 0

	def _extra_fields(self) -> dict[str, Any]:
		return {
			"fall_intensity": self.fall_intensity,
			"inactive_duration_sec": self.inactive_duration_sec,
		}


@dataclass(frozen=True)
class InactivityAlert(ActivityEvent):
	type: ClassVar[EventType] = EventType.INACTIVITY_ALERT

	inactive_duration_sec: int = 0

	def _extra_fields(self) -> dict[str, Any]:
		return {"inactive_duration_sec": self.inactive_duration_sec}


@dataclass(frozen=True)
class EmergencyButtonPressed(ActivityEvent):
	type: ClassVar[EventType] = EventType.EMERGENCY_BUTTON_PRESSED


EVENT_CLASSES: dict[EventType, type[ActivityEvent]] = {
	EventType.LOCATION_UPDATE: LocationUpdate,
	EventType.FALL_DETECTED: FallDetected,
	EventType.INACTIVITY_ALERT: InactivityAlert,
	EventType.EMERGENCY_BUTTON_PRESSED: EmergencyButtonPressed,
}


def serialize_event(event: ActivityEvent) -> str:
	"""Compact, deterministic JSON body for an event.

	The same string is sent directly or stored in the offline queue.
	"""
	return json.dumps(event.to_payload(), separators=(",", ":"), allow_nan=False)


def event_from_payload(payload: dict[str, Any] | str) -> ActivityEvent:
	"""Rebuild an event from a wire body."""
	if isinstance(payload, str):
		payload = json.loads(payload)
	try:
		event_type = EventType(payload["type"])
		cls = EVENT_CLASSES[event_type]
		location = LocationFix.from_dict(payload["location"])
		extra = {
			key: value for key, value in payload.items()
			if key not in ("user_id", "type", "location")
		}
		return cls(user_id=payload["user_id"], location=location, **extra)
	except (KeyError, ValueError, TypeError) as e:
		raise InvalidPayload(f"Malformed event payload: {e}") from e

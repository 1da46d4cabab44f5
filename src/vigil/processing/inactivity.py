"""Inactivity detection.

Tracks the time since the last detected movement and raises one alert per
idle episode. An episode ends with the next detected movement. Alerts are
held back (but still logged) while a do-not-disturb window is active and
become due once the window ends if the user is still idle.
"""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from datetime import time as dtime
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from vigil.config import InactivityConfig
from vigil.events import LocationFix
from vigil.storage.state import LAST_INACTIVITY_ALERT, LAST_MOVEMENT_TIME

if TYPE_CHECKING:
	from vigil.processing.fall_detection import FallDetectionResult
	from vigil.sensor.sample import SlidingWindow
	from vigil.storage.state import StateStore

logger = structlog.get_logger(__name__)

# lastMovementTime is written at most this often while moving
MOVEMENT_PERSIST_INTERVAL_SEC = 1.0


class SuppressionWindow(Protocol):
	def is_within_suppression_window(self, now: float) -> bool:
		...


def _parse_hhmm(value: str) -> dtime:
	hours, minutes = value.split(":")
	return dtime(hour=int(hours), minute=int(minutes))


@dataclass
class DoNotDisturbWindow:
	"""Daily local-time window, e.g. 22:00-07:00. Windows may wrap midnight."""
	start: str = "22:00"
	end: str = "07:00"
	enabled: bool = True

	def __post_init__(self) -> None:
		self._start = _parse_hhmm(self.start)
		self._end = _parse_hhmm(self.end)

	def is_within_suppression_window(self, now: float) -> bool:
		if not self.enabled or self._start == self._end:
			return False
		current = datetime.fromtimestamp(now).time()
		if self._start < self._end:
			return self._start <= current < self._end
		return current >= self._start or current < self._end


def is_movement(
	result: FallDetectionResult,
	window: SlidingWindow,
	fall_threshold: float,
	movement_threshold: float | None,
) -> bool:
	"""Decide whether a processed sample counts as user movement.

	With ``movement_threshold=None`` every sample that is not part of a fall
	candidate counts. Otherwise the acceleration must also change by at least
	``movement_threshold`` g between consecutive samples, so a phone lying
	still on a table is not mistaken for an active user.
	"""
	if result.is_candidate or result.magnitude > fall_threshold:
		return False
	if movement_threshold is None:
		return True
	return window.delta_magnitude() >= movement_threshold


@dataclass
class InactivityCheck:
	"""Outcome of one periodic inactivity check."""
	timestamp: float
	last_movement_time: float | None
	inactive_sec: float = 0.0
	inactive: bool = False
	suppressed: bool = False
	already_alerted: bool = False
	alert_due: bool = False
	location: LocationFix | None = None

	def to_dict(self) -> dict[str, Any]:
		return {
			"timestamp": self.timestamp,
			"last_movement_time": self.last_movement_time,
			"inactive_sec": self.inactive_sec,
			"inactive": self.inactive,
			"suppressed": self.suppressed,
			"already_alerted": self.already_alerted,
			"alert_due": self.alert_due,
			"location": self.location.to_dict() if self.location else None,
		}


class InactivityMonitor:
	"""Raises at most one inactivity alert per idle episode."""

	def __init__(
		self,
		store: StateStore,
		config: InactivityConfig | None = None,
		suppression: SuppressionWindow | None = None,
		clock: Callable[[], float] = time.time,
	) -> None:
		self._store = store
		self.config = config or InactivityConfig()
		self.suppression = suppression
		self._clock = clock
		self._last_movement: float | None = store.get_last_movement_time()
		self._last_persisted: float | None = self._last_movement
		self._alerted = store.get(LAST_INACTIVITY_ALERT) is not None

	@property
	def threshold_sec(self) -> float:
		return self.config.threshold_sec

	@property
	def last_movement_time(self) -> float | None:
		return self._last_movement

	def set_threshold(self, seconds: float) -> None:
		"""Apply a caregiver-configured threshold."""
		if seconds <= 0:
			raise ValueError(f"Inactivity threshold must be positive, got {seconds}")
		self.config.threshold_sec = float(seconds)
		logger.info("inactivity_threshold_updated", threshold_sec=seconds)

	def record_movement(self, timestamp: float | None = None) -> None:
		ts = timestamp if timestamp is not None else self._clock()
		if self._last_movement is not None and ts < self._last_movement:
			return
		self._last_movement = ts

		if self._alerted:
			self._alerted = False
			self._store.update({LAST_MOVEMENT_TIME: ts})
			self._store.delete(LAST_INACTIVITY_ALERT)
			self._last_persisted = ts
			logger.info("activity_resumed", timestamp=ts)
			return

		if self._last_persisted is None or ts - self._last_persisted >= MOVEMENT_PERSIST_INTERVAL_SEC:
			self._store.set_last_movement_time(ts)
			self._last_persisted = ts

	def check(self, now: float | None = None) -> InactivityCheck:
		"""Evaluate the idle period. Marks the episode alerted when an alert is due."""
		now = now if now is not None else self._clock()

		if self._last_movement is None:
			# Nothing recorded yet: the idle clock starts now.
			self._last_movement = now
			self._store.set_last_movement_time(now)
			self._last_persisted = now
			return InactivityCheck(timestamp=now, last_movement_time=now)

		inactive_sec = max(0.0, now - self._last_movement)
		check = InactivityCheck(
			timestamp=now,
			last_movement_time=self._last_movement,
			inactive_sec=inactive_sec,
			inactive=inactive_sec > self.config.threshold_sec,
		)
		if not check.inactive:
			return check

		if self._alerted:
			check.already_alerted = True
			return check

		if self.suppression is not None and self.suppression.is_within_suppression_window(now):
			check.suppressed = True
			logger.info("inactivity_suppressed", inactive_sec=round(inactive_sec), reason="do_not_disturb")
			return check

		location = self._store.get_last_location()
		if location is None:
			logger.warning("inactivity_without_location")
			location = LocationFix.unknown()
		check.location = location
		check.alert_due = True
		self._alerted = True
		self._store.update({
			LAST_MOVEMENT_TIME: self._last_movement,
			LAST_INACTIVITY_ALERT: {"episode_start": self._last_movement, "alerted_at": now, "inactive_sec": inactive_sec},
		})
		self._last_persisted = self._last_movement
		logger.warning("inactivity_detected", inactive_sec=round(inactive_sec), threshold_sec=self.config.threshold_sec)
		return check

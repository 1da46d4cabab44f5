"""Accelerometer-based fall detection.

Detects falls by tracking the magnitude of the windowed mean acceleration:
- IDLE: normal monitoring
- CANDIDATE_RISING: magnitude above threshold, duration timer running
- COOLDOWN: a fall was just confirmed, new detections are suppressed

Averaging the window before taking the norm rejects single-sample spikes.
All timing uses sample timestamps, so replays behave like live streams.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from vigil.events import LocationFix
from vigil.sensor.sample import SensorSample, SlidingWindow

if TYPE_CHECKING:
	from vigil.config import SensorConfig
	from vigil.storage.state import StateStore

logger = logging.getLogger(__name__)

# Tolerance for float epoch-timestamp arithmetic (ms)
_TIME_EPS_MS = 1e-3


class FallState(str, Enum):
	"""Fall detection state machine states."""
	IDLE = "idle"
	CANDIDATE_RISING = "candidate_rising"
	COOLDOWN = "cooldown"


@dataclass
class FallDetectionConfig:
	"""Configuration for fall detection algorithm."""
	fall_threshold: float = 2.5           # g, windowed mean magnitude
	min_fall_duration_ms: float = 200.0   # sustained time above threshold
	fall_cooldown_ms: float = 30_000.0    # suppression after a confirmed fall
	window_size: int = 10                 # samples in the sliding window
	sample_interval_ms: float = 100.0
	min_window_samples: int = 1           # samples needed before evaluating
	post_fall_inactivity_sec: int = 300   # reported with every fall

	@classmethod
	def from_sensor_config(cls, config: SensorConfig) -> FallDetectionConfig:
		return cls(
			fall_threshold=config.fall_threshold,
			min_fall_duration_ms=config.min_fall_duration_ms,
			fall_cooldown_ms=config.fall_cooldown_ms,
			window_size=config.window_size,
			sample_interval_ms=config.sample_interval_ms,
			min_window_samples=config.min_window_samples,
			post_fall_inactivity_sec=config.post_fall_inactivity_sec,
		)


@dataclass
class FallCandidate:
	start_time: float
	is_active: bool = True
	peak_magnitude: float = 0.0


@dataclass
class FallEvent:
	"""A confirmed fall."""
	timestamp: float
	start_time: float
	intensity: float             # windowed magnitude at confirmation
	peak_magnitude: float
	location: LocationFix
	location_known: bool = True

	@property
	def duration(self) -> float:
		return self.timestamp - self.start_time

	def to_dict(self) -> dict[str, Any]:
		"""Convert to dictionary for serialization."""
		return {
			"timestamp": self.timestamp,
			"start_time": self.start_time,
			"intensity": self.intensity,
			"peak_magnitude": self.peak_magnitude,
			"duration": self.duration,
			"location": self.location.to_dict(),
			"location_known": self.location_known,
		}


@dataclass
class FallDetectionResult:
	"""Result of processing one sample."""
	state: FallState
	magnitude: float = 0.0
	evaluated: bool = False
	fall_detected: bool = False
	event: FallEvent | None = None
	timestamp: float = 0.0

	@property
	def is_candidate(self) -> bool:
		return self.state == FallState.CANDIDATE_RISING

	def to_dict(self) -> dict[str, Any]:
		return {
			"state": self.state.value,
			"magnitude": self.magnitude,
			"evaluated": self.evaluated,
			"fall_detected": self.fall_detected,
			"event": self.event.to_dict() if self.event else None,
			"timestamp": self.timestamp,
		}


class FallDetector:
	"""Threshold/duration/cooldown state machine over a sliding window.

	Example:
		detector = FallDetector(FallDetectionConfig(), store=store)
		detector.on_fall(lambda event: notify(event))

		for sample in samples:
			result = detector.process_sample(sample)
	"""

	def __init__(
		self,
		config: FallDetectionConfig | None = None,
		store: StateStore | None = None,
	) -> None:
		self.config = config or FallDetectionConfig()
		self._store = store
		self.window = SlidingWindow(self.config.window_size, self.config.sample_interval_ms)
		self._state = FallState.IDLE
		self._candidate: FallCandidate | None = None
		self._last_fall_time: float | None = None
		self._listeners: list[Callable[[FallEvent], None]] = []
		self._completed_events: list[FallEvent] = []
		self._sample_count = 0

	@property
	def state(self) -> FallState:
		return self._state

	@property
	def candidate(self) -> FallCandidate | None:
		return self._candidate

	@property
	def last_fall_time(self) -> float | None:
		return self._last_fall_time

	def on_fall(self, listener: Callable[[FallEvent], None]) -> None:
		"""Register a listener called once per confirmed fall."""
		self._listeners.append(listener)

	def process_sample(self, sample: SensorSample) -> FallDetectionResult:
		"""Feed one sample through the window and state machine."""
		self._sample_count += 1
		now = sample.timestamp
		self.window.append(sample)

		if self._state == FallState.COOLDOWN:
			last_fall = self._last_fall_time if self._last_fall_time is not None else now
			since_fall_ms = (now - last_fall) * 1000.0
			if since_fall_ms + _TIME_EPS_MS >= self.config.fall_cooldown_ms:
				self._state = FallState.IDLE
				logger.info("Fall cooldown elapsed, detector idle")
			else:
				# Excursions during cooldown are ignored entirely.
				return FallDetectionResult(
					state=self._state,
					magnitude=self.window.mean_magnitude(),
					evaluated=False,
					timestamp=now,
				)

		if len(self.window) < self.config.min_window_samples:
			return FallDetectionResult(state=self._state, timestamp=now)

		magnitude = self.window.mean_magnitude()
		result = FallDetectionResult(state=self._state, magnitude=magnitude, evaluated=True, timestamp=now)

		if magnitude > self.config.fall_threshold:
			candidate = self._candidate
			if candidate is None:
				candidate = FallCandidate(start_time=now, peak_magnitude=magnitude)
				self._candidate = candidate
				self._state = FallState.CANDIDATE_RISING
				logger.debug(f"Fall candidate opened: magnitude={magnitude:.2f}g")
			else:
				candidate.peak_magnitude = max(candidate.peak_magnitude, magnitude)

			elapsed_ms = (now - candidate.start_time) * 1000.0
			if elapsed_ms + _TIME_EPS_MS >= self.config.min_fall_duration_ms:
				result.event = self._confirm_fall(candidate, now, magnitude)
				result.fall_detected = True
		elif self._candidate is not None:
			logger.debug(
				f"Fall candidate discarded after {(now - self._candidate.start_time) * 1000.0:.0f} ms"
			)
			self._candidate = None
			self._state = FallState.IDLE

		result.state = self._state
		return result

	def _confirm_fall(self, candidate: FallCandidate, now: float, magnitude: float) -> FallEvent:
		candidate.is_active = False
		self._candidate = None
		self._state = FallState.COOLDOWN
		self._last_fall_time = now

		location, known = self._last_known_location()
		event = FallEvent(
			timestamp=now,
			start_time=candidate.start_time,
			intensity=magnitude,
			peak_magnitude=candidate.peak_magnitude,
			location=location,
			location_known=known,
		)
		self._completed_events.append(event)
		logger.warning(
			f"Fall detected: intensity={magnitude:.2f}g duration={event.duration * 1000:.0f}ms "
			f"location=({location.latitude}, {location.longitude})"
		)

		if self._store is not None:
			try:
				self._store.set_last_fall({**event.to_dict(), "delivery": "pending"})
			except Exception as e:
				logger.error(f"Failed to persist fall record: {e}")

		for listener in self._listeners:
			try:
				listener(event)
			except Exception as e:
				logger.error(f"Fall listener error: {e}")

		return event

	def _last_known_location(self) -> tuple[LocationFix, bool]:
		"""Read the stored location, never blocking the alert on its absence."""
		location = None
		if self._store is not None:
			try:
				location = self._store.get_last_location()
			except Exception as e:
				logger.error(f"Failed to read last location: {e}")
		if location is None or not location.is_valid:
			logger.warning("No valid location available for fall, using fallback (0, 0)")
			return LocationFix.unknown(), False
		return location, True

	def get_completed_events(self) -> list[FallEvent]:
		"""Get all confirmed falls since the last reset."""
		return self._completed_events.copy()

	def reset(self) -> None:
		"""Clear window and return to IDLE (tracking stopped)."""
		self.window.clear()
		self._state = FallState.IDLE
		self._candidate = None
		self._last_fall_time = None
		self._completed_events.clear()
		self._sample_count = 0

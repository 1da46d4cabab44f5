"""Mock sensors for running the monitor without phone hardware.

MockAccelerometer can either be driven explicitly with ``emit()`` (tests,
replays) or generate a synthetic stream on a background thread. Profiles
produce resting, walking and fall patterns in g.

Enable with VIGIL_MOCK_SENSORS=true environment variable.
"""
from __future__ import annotations

import logging
import math
import os
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from threading import Event, Thread

import numpy as np

from vigil.events import LocationFix

from .accelerometer import Accelerometer, Reading
from .location import AccuracyLevel, LocationProvider
from .sample import SensorSample

logger = logging.getLogger(__name__)


def is_mock_enabled() -> bool:
	"""Check if mock mode is enabled via environment variable."""
	return os.environ.get("VIGIL_MOCK_SENSORS", "").lower() in ("true", "1", "yes")


@dataclass
class MockMotionConfig:
	"""Configuration for synthetic accelerometer data."""
	profile: str = "resting"  # resting, walking, fall
	noise_g: float = 0.02
	walking_amplitude_g: float = 0.3
	step_frequency_hz: float = 1.8
	fall_at_s: float = 3.0  # seconds into the stream
	impact_g: float = 3.0
	impact_duration_s: float = 1.5  # long enough to lift the windowed mean over the threshold
	seed: int | None = None


def generate_samples(
	config: MockMotionConfig,
	start_time: float,
	count: int,
	interval_ms: float = 100.0,
) -> Iterator[SensorSample]:
	"""Yield ``count`` synthetic samples starting at ``start_time``."""
	rng = np.random.default_rng(config.seed)
	dt = interval_ms / 1000.0
	for i in range(count):
		t = i * dt
		x, y, z = 0.0, 0.0, 1.0  # device at rest, gravity on z

		if config.profile == "walking":
			z += config.walking_amplitude_g * math.sin(2 * math.pi * config.step_frequency_hz * t)
			x += 0.5 * config.walking_amplitude_g * math.cos(2 * math.pi * config.step_frequency_hz * t)
		elif config.profile == "fall":
			if config.fall_at_s <= t < config.fall_at_s + config.impact_duration_s:
				x, y, z = 0.0, 0.0, config.impact_g
			elif t >= config.fall_at_s + config.impact_duration_s:
				x, y, z = 1.0, 0.0, 0.0  # lying on the side, motionless

		noise = rng.normal(0.0, config.noise_g, 3)
		yield SensorSample(
			x=x + float(noise[0]),
			y=y + float(noise[1]),
			z=z + float(noise[2]),
			timestamp=start_time + t,
		)


class MockAccelerometer(Accelerometer):
	"""Scriptable accelerometer.

	Usage:
		accel = MockAccelerometer()
		sampler = MotionSampler(accel, store)
		await sampler.start()
		accel.emit(0.0, 0.0, 1.0, timestamp=1000.0)
	"""

	def __init__(
		self,
		available: bool = True,
		permission_granted: bool = True,
		config: MockMotionConfig | None = None,
	) -> None:
		self.available = available
		self.permission_granted = permission_granted
		self._config = config or MockMotionConfig()
		self._listeners: list[Reading] = []
		self.update_interval_ms = 100
		self.add_listener_calls = 0
		self._stop_event = Event()
		self._stream_thread: Thread | None = None

	@property
	def listener_count(self) -> int:
		return len(self._listeners)

	def is_available(self) -> bool:
		return self.available

	def request_permission(self) -> bool:
		return self.permission_granted

	def set_update_interval(self, interval_ms: int) -> None:
		self.update_interval_ms = interval_ms

	def add_listener(self, callback: Reading) -> None:
		self.add_listener_calls += 1
		self._listeners.append(callback)

	def remove_all_listeners(self) -> None:
		self.stop_stream()
		self._listeners.clear()

	def emit(self, x: float, y: float, z: float, timestamp: float | None = None) -> None:
		"""Deliver one reading to every listener."""
		ts = timestamp if timestamp is not None else time.time()
		for cb in list(self._listeners):
			cb(x, y, z, ts)

	def emit_sample(self, sample: SensorSample) -> None:
		self.emit(sample.x, sample.y, sample.z, sample.timestamp)

	def stream_async(self, duration_s: float | None = None) -> None:
		"""Generate readings in real time on a background thread."""
		if self._stream_thread and self._stream_thread.is_alive():
			raise RuntimeError("Already streaming")

		self._stop_event.clear()
		interval = self.update_interval_ms / 1000.0
		count = int(duration_s / interval) if duration_s else 10**9

		def run() -> None:
			for sample in generate_samples(self._config, time.time(), count, self.update_interval_ms):
				if self._stop_event.is_set():
					break
				self.emit(sample.x, sample.y, sample.z)
				self._stop_event.wait(interval)

		self._stream_thread = Thread(target=run, daemon=True)
		self._stream_thread.start()
		logger.info(f"MockAccelerometer streaming profile={self._config.profile}")

	def stop_stream(self) -> None:
		self._stop_event.set()
		if self._stream_thread and self._stream_thread.is_alive():
			self._stream_thread.join(timeout=2.0)
		self._stream_thread = None


class MockLocationProvider(LocationProvider):
	"""Scriptable positioning service."""

	def __init__(self, foreground_granted: bool = True, background_granted: bool = True) -> None:
		self.foreground_granted = foreground_granted
		self.background_granted = background_granted
		self._callback: Callable[[LocationFix], None] | None = None
		self.subscribe_calls = 0
		self.accuracy: AccuracyLevel | None = None

	@property
	def is_subscribed(self) -> bool:
		return self._callback is not None

	def request_foreground_permission(self) -> bool:
		return self.foreground_granted

	def request_background_permission(self) -> bool:
		return self.background_granted

	def subscribe(
		self,
		callback: Callable[[LocationFix], None],
		accuracy: AccuracyLevel,
		time_interval_ms: int,
		distance_interval_m: float,
	) -> None:
		self.subscribe_calls += 1
		self.accuracy = accuracy
		self._callback = callback

	def unsubscribe(self) -> None:
		self._callback = None

	def emit_fix(
		self,
		latitude: float,
		longitude: float,
		accuracy: float | None = 5.0,
		timestamp: float | None = None,
	) -> None:
		if self._callback is None:
			return
		self._callback(LocationFix(
			latitude=latitude,
			longitude=longitude,
			accuracy=accuracy,
			timestamp=timestamp if timestamp is not None else time.time(),
		))

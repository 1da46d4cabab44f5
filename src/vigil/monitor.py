"""Safety monitor: owns the sensors, detectors and dispatcher of one process.

The monitor is the single place where components are wired together:

	accelerometer -> MotionSampler -> FallDetector -> EventDispatcher
	                                \\-> InactivityMonitor (movement)
	location provider -> LocationTracker -> EventDispatcher

Detector state transitions never wait on delivery: the UI sees a fall as
soon as it is confirmed, dispatches run as tracked asyncio tasks, and their
failures are reported to UI listeners instead of unwinding the detector.
Detector and inactivity steps run in a worker thread because they write to
the state store.
"""
from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx
import structlog

from vigil.config import AppConfig
from vigil.delivery import ConnectivityObserver, DeliveryResult, EventDispatcher
from vigil.errors import BackgroundPermissionDenied, PreconditionError, UserIdNotSet, VigilError
from vigil.events import LocationFix
from vigil.processing import (
	DoNotDisturbWindow,
	FallDetectionConfig,
	FallDetector,
	FallEvent,
	InactivityCheck,
	InactivityMonitor,
	SuppressionWindow,
	is_movement,
)
from vigil.sensor import Accelerometer, LocationProvider, LocationTracker, MotionSampler, SensorSample
from vigil.storage import SampleRecorder, SessionMetadata, StateStore
from vigil.storage.state import LAST_FALL_DETECTION, TRACKING_ACTIVE

logger = structlog.get_logger(__name__)


class UiListener:
	"""Display hooks for the UI collaborator. Override what you need."""

	def on_fall_confirmed(self, event: FallEvent) -> None:
		pass

	def on_fall_delivery(self, event: FallEvent, result: DeliveryResult | None) -> None:
		pass

	def on_emergency_confirmed(self, result: DeliveryResult) -> None:
		pass

	def on_inactivity_alert(self, check: InactivityCheck, result: DeliveryResult | None) -> None:
		pass

	def on_status_changed(self, status: MonitorStatus) -> None:
		pass

	def on_error(self, error: VigilError) -> None:
		pass


@dataclass
class MonitorStatus:
	"""Flags the UI shows."""
	tracking_active: bool
	fall_detection_active: bool
	location_active: bool
	motion_permission: bool | None
	location_foreground_permission: bool | None
	location_background_permission: bool | None
	user_id_set: bool
	online: bool
	queue_length: int
	detector_state: str
	last_movement_time: float | None = None
	last_fall: dict[str, Any] | None = None

	def to_dict(self) -> dict[str, Any]:
		return {
			"tracking_active": self.tracking_active,
			"fall_detection_active": self.fall_detection_active,
			"location_active": self.location_active,
			"motion_permission": self.motion_permission,
			"location_foreground_permission": self.location_foreground_permission,
			"location_background_permission": self.location_background_permission,
			"user_id_set": self.user_id_set,
			"online": self.online,
			"queue_length": self.queue_length,
			"detector_state": self.detector_state,
			"last_movement_time": self.last_movement_time,
			"last_fall": self.last_fall,
		}


class SafetyMonitor:
	"""Composition root for fall, inactivity and location monitoring.

	Example:
		monitor = SafetyMonitor(config, MockAccelerometer(), MockLocationProvider())
		monitor.set_user_id(42)
		await monitor.start_tracking()
		...
		await monitor.close()
	"""

	def __init__(
		self,
		config: AppConfig | None,
		accelerometer: Accelerometer,
		location_provider: LocationProvider,
		store: StateStore | None = None,
		connectivity: ConnectivityObserver | None = None,
		client: httpx.AsyncClient | None = None,
		suppression: SuppressionWindow | None = None,
		clock: Callable[[], float] = time.time,
	) -> None:
		self.config = config or AppConfig()
		self.store = store if store is not None else StateStore(self.config.paths.state_file)
		self.connectivity = connectivity or ConnectivityObserver()
		self._clock = clock

		if suppression is None and self.config.inactivity.dnd_enabled:
			suppression = DoNotDisturbWindow(
				start=self.config.inactivity.dnd_start,
				end=self.config.inactivity.dnd_end,
			)

		self.dispatcher = EventDispatcher(self.config.dispatch, self.store, self.connectivity, client)
		self.detector = FallDetector(FallDetectionConfig.from_sensor_config(self.config.sensor), self.store)
		self.detector.on_fall(self._on_fall)
		self.inactivity = InactivityMonitor(self.store, self.config.inactivity, suppression, clock)
		self.sampler = MotionSampler(accelerometer, self.store, self.config.sensor.sample_interval_ms)
		self.sampler.subscribe(self._on_sample)
		self.tracker = LocationTracker(
			location_provider,
			self.store,
			emit=self._on_location_update,
			min_interval_sec=self.config.location.min_update_interval_sec,
			time_interval_ms=self.config.location.time_interval_ms,
			distance_interval_m=self.config.location.distance_interval_m,
		)

		self._listeners: list[UiListener] = []
		self._tasks: set[asyncio.Task] = set()
		self._loop: asyncio.AbstractEventLoop | None = None
		self._motion_permission: bool | None = None

	# UI collaborator surface

	def add_ui_listener(self, listener: UiListener) -> None:
		self._listeners.append(listener)

	def _notify(self, hook: str, *args: Any) -> None:
		for listener in list(self._listeners):
			try:
				getattr(listener, hook)(*args)
			except Exception as e:
				logger.error("ui_listener_error", hook=hook, error=str(e))

	def _report_error(self, error: VigilError) -> None:
		logger.warning("monitor_error", error_type=type(error).__name__, message=error.user_message)
		self._notify("on_error", error)

	def set_user_id(self, user_id: int) -> None:
		self.dispatcher.set_user_id(user_id)
		self._notify("on_status_changed", self.status())

	@property
	def is_tracking(self) -> bool:
		return self.sampler.is_running

	def status(self) -> MonitorStatus:
		return MonitorStatus(
			tracking_active=bool(self.store.get(TRACKING_ACTIVE, False)),
			fall_detection_active=self.sampler.is_running,
			location_active=self.tracker.is_running,
			motion_permission=self._motion_permission,
			location_foreground_permission=self.tracker.foreground_permission,
			location_background_permission=self.tracker.background_permission,
			user_id_set=self.dispatcher.user_id is not None,
			online=self.connectivity.is_online,
			queue_length=len(self.dispatcher.queue),
			detector_state=self.detector.state.value,
			last_movement_time=self.inactivity.last_movement_time,
			last_fall=self.store.get(LAST_FALL_DETECTION),
		)

	# Lifecycle

	async def start_tracking(self) -> None:
		"""Start fall detection and location tracking. No-op if already running.

		A refused background location permission does not stop tracking: it
		continues in foreground-only mode and BackgroundPermissionDenied is
		reported through ``on_error``.

		Raises:
			UserIdNotSet, SensorUnavailable, PermissionDenied: nothing is left
			running.
		"""
		if self.sampler.is_running and self.tracker.is_running:
			return

		try:
			if self.dispatcher.user_id is None:
				raise UserIdNotSet()
			self._loop = asyncio.get_running_loop()
			self.dispatcher.bind_loop(self._loop)

			if self.config.sensor.record_samples and self.sampler.recorder is None:
				self.sampler.recorder = self._open_recorder()

			try:
				await self.sampler.start()
				self._motion_permission = True
			except PreconditionError:
				self._motion_permission = False
				raise
			await self.tracker.start(self.config.location.accuracy)
		except PreconditionError as e:
			await self._halt()
			self._report_error(e)
			raise

		self.store.set(TRACKING_ACTIVE, True)
		logger.info(
			"tracking_started",
			user_id=self.dispatcher.user_id,
			background_location=bool(self.tracker.background_permission),
		)
		if self.tracker.background_permission is False:
			self._report_error(BackgroundPermissionDenied())
		self._notify("on_status_changed", self.status())

	async def stop_tracking(self) -> None:
		"""Stop all monitoring. Always succeeds; no-op if not running."""
		await self._halt()
		self.store.set(TRACKING_ACTIVE, False)
		logger.info("tracking_stopped")
		self._notify("on_status_changed", self.status())

	async def resume_tracking(self) -> bool:
		"""Restart tracking after a process restart if it was active before."""
		if not self.store.get(TRACKING_ACTIVE, False) or self.is_tracking:
			return False
		try:
			await self.start_tracking()
		except VigilError as e:
			logger.warning("tracking_resume_failed", error=str(e))
			return False
		logger.info("tracking_resumed")
		return True

	async def _halt(self) -> None:
		await self.sampler.stop()
		await self.tracker.stop()
		self.detector.reset()
		if self.sampler.recorder is not None:
			self.sampler.recorder.close()
			self.sampler.recorder = None

	def _open_recorder(self) -> SampleRecorder:
		metadata = SessionMetadata(
			start_time=datetime.now(),
			user_id=self.dispatcher.user_id,
			device=type(self.sampler).__name__,
			sample_interval_ms=self.config.sensor.sample_interval_ms,
		)
		path = self.config.paths.data_dir / f"samples_{metadata.session_id}.parquet"
		return SampleRecorder(path, metadata)

	async def wait_for_dispatches(self) -> None:
		"""Process pending samples and wait for in-flight deliveries."""
		await self.sampler.drain()
		while self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)
		await self.dispatcher.wait_for_flushes()

	async def close(self) -> None:
		"""Release resources. The persisted tracking flag is left as is."""
		await self._halt()
		await self.wait_for_dispatches()
		await self.dispatcher.close()

	# Sample path

	async def _on_sample(self, sample: SensorSample) -> None:
		await asyncio.to_thread(self._process_sample, sample)

	def _process_sample(self, sample: SensorSample) -> None:
		result = self.detector.process_sample(sample)
		if is_movement(
			result,
			self.detector.window,
			self.config.sensor.fall_threshold,
			self.config.inactivity.movement_threshold,
		):
			self.inactivity.record_movement(sample.timestamp)

	def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
		try:
			asyncio.get_running_loop()
		except RuntimeError:
			if self._loop is None or self._loop.is_closed():
				logger.error("dispatch_dropped", reason="no_event_loop")
				coro.close()
				return
			self._loop.call_soon_threadsafe(self._track, coro)
			return
		self._track(coro)

	def _track(self, coro: Coroutine[Any, Any, Any]) -> None:
		task = asyncio.ensure_future(coro)
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	def _on_fall(self, event: FallEvent) -> None:
		self._notify("on_fall_confirmed", event)
		self._spawn(self._dispatch_fall(event))

	async def _dispatch_fall(self, event: FallEvent) -> None:
		result: DeliveryResult | None = None
		try:
			result = await self.dispatcher.send_fall_detected(
				event.location,
				fall_intensity=round(event.intensity, 3),
				inactive_duration_sec=self.config.sensor.post_fall_inactivity_sec,
			)
			delivery = result.status.value
		except VigilError as e:
			delivery = "error"
			self._report_error(e)

		def mark(record: Any) -> Any:
			if isinstance(record, dict) and record.get("timestamp") == event.timestamp:
				return {**record, "delivery": delivery}
			return record

		await asyncio.to_thread(self.store.mutate, LAST_FALL_DETECTION, mark)
		self._notify("on_fall_delivery", event, result)

	def _on_location_update(self, fix: LocationFix, steps: int, distance_km: float) -> None:
		self._spawn(self._dispatch_location(fix, steps, distance_km))

	async def _dispatch_location(self, fix: LocationFix, steps: int, distance_km: float) -> None:
		try:
			await self.dispatcher.send_location_update(fix, steps=steps, distance_km=distance_km)
		except VigilError as e:
			self._report_error(e)

	# User and scheduler operations

	def _last_location(self) -> LocationFix:
		location = self.store.get_last_location()
		if location is None or not location.is_valid:
			logger.warning("no_location_available", fallback="0,0")
			return LocationFix.unknown()
		return location

	async def press_emergency_button(self) -> DeliveryResult:
		"""Send an emergency alert with the last known location.

		The result is QUEUED rather than an error while offline.
		"""
		try:
			result = await self.dispatcher.send_emergency(self._last_location())
		except VigilError as e:
			self._report_error(e)
			raise
		logger.warning("emergency_button_pressed", delivery=result.status.value)
		self._notify("on_emergency_confirmed", result)
		return result

	async def check_inactivity(self, now: float | None = None) -> InactivityCheck:
		"""Run one inactivity check and dispatch an alert when due."""
		check = await asyncio.to_thread(self.inactivity.check, now)
		if not check.alert_due:
			return check

		result: DeliveryResult | None = None
		try:
			result = await self.dispatcher.send_inactivity_alert(
				check.location or self._last_location(),
				inactive_duration_sec=int(check.inactive_sec),
			)
		except VigilError as e:
			self._report_error(e)
		self._notify("on_inactivity_alert", check, result)
		return check

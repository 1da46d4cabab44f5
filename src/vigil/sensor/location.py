"""Location provider interface and the location tracker."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from vigil.errors import PermissionDenied
from vigil.events import LocationFix
from vigil.geo import haversine_km

if TYPE_CHECKING:
	from vigil.storage.state import StateStore

logger = structlog.get_logger(__name__)

# emit(location, steps, distance_km)
LocationEmitter = Callable[[LocationFix, int, float], None]


class AccuracyLevel(str, Enum):
	LOWEST = "lowest"
	LOW = "low"
	BALANCED = "balanced"
	HIGH = "high"
	HIGHEST = "highest"


class LocationProvider(ABC):
	"""Platform positioning service."""

	@abstractmethod
	def request_foreground_permission(self) -> bool:
		pass

	@abstractmethod
	def request_background_permission(self) -> bool:
		pass

	@abstractmethod
	def subscribe(
		self,
		callback: Callable[[LocationFix], None],
		accuracy: AccuracyLevel,
		time_interval_ms: int,
		distance_interval_m: float,
	) -> None:
		pass

	@abstractmethod
	def unsubscribe(self) -> None:
		pass


class LocationTracker:
	"""Keeps the stored location current and emits periodic location updates.

	Every fix is persisted. A LOCATION_UPDATE is emitted only when at least
	``min_interval_sec`` has passed since the last accepted fix, which filters
	out higher-frequency OS callbacks.
	"""

	def __init__(
		self,
		provider: LocationProvider,
		store: StateStore,
		emit: LocationEmitter | None = None,
		min_interval_sec: float = 60.0,
		time_interval_ms: int = 60_000,
		distance_interval_m: float = 10.0,
	) -> None:
		self._provider = provider
		self._store = store
		self._emit = emit
		self.min_interval_sec = min_interval_sec
		self.time_interval_ms = time_interval_ms
		self.distance_interval_m = distance_interval_m
		self._running = False
		self._accuracy = AccuracyLevel.BALANCED
		self._last_accepted: LocationFix | None = None
		self._pending_steps = 0
		self.foreground_permission: bool | None = None
		self.background_permission: bool | None = None
		self.fixes_received = 0
		self.updates_emitted = 0

	@property
	def is_running(self) -> bool:
		return self._running

	@property
	def accuracy(self) -> AccuracyLevel:
		return self._accuracy

	async def start(self, accuracy: AccuracyLevel | str = AccuracyLevel.BALANCED) -> None:
		"""Subscribe to position updates. No-op if already running.

		Raises PermissionDenied when foreground access is refused. When only
		background access is refused the subscription still starts in
		foreground-only mode and ``background_permission`` is False.
		"""
		if self._running:
			logger.debug("location_tracker_already_running")
			return

		accuracy = AccuracyLevel(accuracy)

		self.foreground_permission = self._provider.request_foreground_permission()
		if not self.foreground_permission:
			logger.warning("location_permission_denied", scope="foreground")
			raise PermissionDenied("location-foreground", "Foreground location permission not granted")

		self.background_permission = self._provider.request_background_permission()
		if not self.background_permission:
			logger.warning("location_permission_denied", scope="background", mode="foreground_only")

		self._accuracy = accuracy
		self._provider.subscribe(
			self._on_fix,
			accuracy=accuracy,
			time_interval_ms=self.time_interval_ms,
			distance_interval_m=self.distance_interval_m,
		)
		self._running = True
		logger.info("location_tracker_started", accuracy=accuracy.value, min_interval_sec=self.min_interval_sec)

	async def stop(self) -> None:
		"""Unsubscribe. No-op if not running."""
		if not self._running:
			return
		self._running = False
		try:
			self._provider.unsubscribe()
		except Exception as e:
			logger.error("location_unsubscribe_failed", error=str(e))
		logger.info("location_tracker_stopped", fixes=self.fixes_received, updates=self.updates_emitted)

	def record_steps(self, steps: int) -> None:
		"""Add pedometer steps to the next location update."""
		if steps > 0:
			self._pending_steps += steps

	def _on_fix(self, fix: LocationFix) -> None:
		if not self._running:
			return
		self.handle_fix(fix)

	def handle_fix(self, fix: LocationFix) -> bool:
		"""Persist a fix and emit an update if the interval gate allows it.

		Returns True if the fix was accepted for a LOCATION_UPDATE.
		"""
		self.fixes_received += 1
		if not fix.is_valid:
			logger.warning("invalid_location_fix_ignored", latitude=fix.latitude, longitude=fix.longitude)
			return False

		self._store.set_last_location(fix)

		previous = self._last_accepted
		if previous is not None and fix.timestamp - previous.timestamp < self.min_interval_sec:
			logger.debug("location_update_gated", elapsed=fix.timestamp - previous.timestamp)
			return False

		distance_km = 0.0
		if previous is not None:
			distance_km = haversine_km(previous.latitude, previous.longitude, fix.latitude, fix.longitude)
		steps = self._pending_steps
		self._pending_steps = 0
		self._last_accepted = fix
		self.updates_emitted += 1

		if self._emit is not None:
			self._emit(fix, steps, round(distance_km, 3))
		return True

"""Global application state for the local control API."""
from __future__ import annotations

import logging
from collections import deque

import httpx

from vigil.config import AppConfig, get_config
from vigil.delivery import ConnectivityObserver, DeliveryResult
from vigil.errors import PermissionDenied, VigilError
from vigil.monitor import MonitorStatus, SafetyMonitor, UiListener
from vigil.processing import FallEvent, InactivityCheck
from vigil.scheduler import BackgroundScheduler
from vigil.sensor import MockAccelerometer, MockLocationProvider
from vigil.storage import StateStore

from .schemas import UiNotification

logger = logging.getLogger(__name__)


class NotificationLog(UiListener):
	"""Keeps the most recent UI notifications for polling clients."""

	def __init__(self, maxlen: int = 100) -> None:
		self.entries: deque[UiNotification] = deque(maxlen=maxlen)

	def _add(self, type_: str, payload: dict) -> None:
		self.entries.append(UiNotification(type=type_, payload=payload))

	def on_fall_confirmed(self, event: FallEvent) -> None:
		self._add("fall_confirmed", {"event": event.to_dict()})

	def on_fall_delivery(self, event: FallEvent, result: DeliveryResult | None) -> None:
		self._add("fall_delivery", {
			"event": event.to_dict(),
			"delivery": result.to_dict() if result else None,
		})

	def on_emergency_confirmed(self, result: DeliveryResult) -> None:
		self._add("emergency_confirmed", {"delivery": result.to_dict()})

	def on_inactivity_alert(self, check: InactivityCheck, result: DeliveryResult | None) -> None:
		self._add("inactivity_alert", {
			"check": check.to_dict(),
			"delivery": result.to_dict() if result else None,
		})

	def on_status_changed(self, status: MonitorStatus) -> None:
		self._add("status", status.to_dict())

	def on_error(self, error: VigilError) -> None:
		payload = {"error": type(error).__name__, "message": error.user_message}
		if isinstance(error, PermissionDenied):
			payload["scope"] = error.scope
		self._add("error", payload)


class AppState:
	"""Monitor, scheduler and mock collaborators behind the API."""

	def __init__(
		self,
		config: AppConfig | None = None,
		store: StateStore | None = None,
		client: httpx.AsyncClient | None = None,
	) -> None:
		self.config = config or get_config()
		self.accelerometer = MockAccelerometer()
		self.location_provider = MockLocationProvider()
		self.connectivity = ConnectivityObserver()
		self.monitor = SafetyMonitor(
			self.config,
			self.accelerometer,
			self.location_provider,
			store=store,
			connectivity=self.connectivity,
			client=client,
		)
		self.scheduler = BackgroundScheduler(self.monitor)
		self.notifications = NotificationLog()
		self.monitor.add_ui_listener(self.notifications)


# Global singleton
_app_state: AppState | None = None


def get_app_state() -> AppState:
	global _app_state
	if _app_state is None:
		_app_state = AppState()
	return _app_state


def set_app_state(state: AppState | None) -> None:
	"""Replace the global state (tests, embedding)."""
	global _app_state
	_app_state = state

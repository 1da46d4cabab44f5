"""Event delivery to the remote ingest endpoint.

Events are validated, serialized once and POSTed with a fixed timeout and a
fixed-delay retry policy. While offline, the serialized request goes to the
durable offline queue, which is drained in FIFO order when connectivity
returns. The body stored in the queue is byte-identical to the one a direct
submission would have sent.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
import structlog

from vigil.config import DispatchConfig
from vigil.delivery.connectivity import ConnectivityObserver
from vigil.delivery.queue import OfflineQueue, OfflineQueueEntry
from vigil.errors import DeliveryError, InvalidPayload, UserIdNotSet
from vigil.events import (
	ActivityEvent,
	EmergencyButtonPressed,
	FallDetected,
	InactivityAlert,
	LocationFix,
	LocationUpdate,
	serialize_event,
)
from vigil.storage.state import StateStore

logger = structlog.get_logger(__name__)


class DeliveryStatus(str, Enum):
	DELIVERED = "delivered"
	QUEUED = "queued"
	FAILED = "failed"


@dataclass
class DeliveryResult:
	"""Outcome of one submission."""
	status: DeliveryStatus
	attempts: int = 0
	status_code: int | None = None
	response: Any = None
	error: str | None = None

	@property
	def delivered(self) -> bool:
		return self.status == DeliveryStatus.DELIVERED

	def raise_for_failure(self) -> DeliveryResult:
		"""Raise DeliveryError unless delivered or queued. Returns self."""
		if self.status == DeliveryStatus.FAILED:
			raise DeliveryError(f"Delivery failed after {self.attempts} attempt(s): {self.error}")
		return self

	def to_dict(self) -> dict[str, Any]:
		return {
			"status": self.status.value,
			"attempts": self.attempts,
			"status_code": self.status_code,
			"error": self.error,
		}


@dataclass
class FlushResult:
	"""Outcome of one offline-queue drain."""
	attempted: int = 0
	delivered: int = 0
	kept: int = 0
	dropped: int = 0
	skipped: bool = False
	remaining: int = 0
	failures: list[str] = field(default_factory=list)

	def to_dict(self) -> dict[str, Any]:
		return {
			"attempted": self.attempted,
			"delivered": self.delivered,
			"kept": self.kept,
			"dropped": self.dropped,
			"skipped": self.skipped,
			"remaining": self.remaining,
		}


class EventDispatcher:
	"""Delivers activity events, queueing them while offline.

	Example:
		dispatcher = EventDispatcher(config.dispatch, store, connectivity)
		dispatcher.set_user_id(42)
		result = await dispatcher.send_emergency(location)
	"""

	def __init__(
		self,
		config: DispatchConfig | None = None,
		store: StateStore | None = None,
		connectivity: ConnectivityObserver | None = None,
		client: httpx.AsyncClient | None = None,
	) -> None:
		self.config = config or DispatchConfig()
		self.store = store if store is not None else StateStore()
		self.connectivity = connectivity or ConnectivityObserver()
		self.queue = OfflineQueue(self.store, self.config.queue_max_entries, self.config.queue_max_age_sec)
		self._client = client or httpx.AsyncClient(timeout=self.config.timeout_sec)
		self._owns_client = client is None
		self._user_id: int | None = None
		self._flush_lock = asyncio.Lock()
		self._flush_tasks: set[asyncio.Task] = set()
		self._loop: asyncio.AbstractEventLoop | None = None
		self.connectivity.add_listener(self._on_connectivity_change)

	@property
	def user_id(self) -> int | None:
		return self._user_id

	def set_user_id(self, user_id: int) -> None:
		"""Supplied once by the auth collaborator before any dispatch."""
		if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
			raise ValueError(f"user_id must be a positive integer, got {user_id!r}")
		self._user_id = user_id
		logger.info("user_id_set", user_id=user_id)

	def _require_user_id(self) -> int:
		if self._user_id is None:
			raise UserIdNotSet()
		return self._user_id

	def _headers(self) -> dict[str, str]:
		headers = {"Content-Type": "application/json"}
		if self.config.auth_token:
			headers["Authorization"] = f"Bearer {self.config.auth_token}"
		return headers

	async def submit(self, event: ActivityEvent) -> DeliveryResult:
		"""Deliver one event.

		Raises:
			UserIdNotSet: no user id has been supplied.
			InvalidPayload: the event violates the payload invariants. Nothing
				is sent or queued.
		"""
		self._require_user_id()
		try:
			event.validate()
		except InvalidPayload as e:
			logger.error("invalid_payload", event_type=event.type.value, error=str(e))
			raise

		body = serialize_event(event)
		url = self.config.endpoint

		if not self.connectivity.is_online:
			length = self._enqueue(url, body, event.type.value)
			logger.info("event_queued_offline", event_type=event.type.value, queue_length=length)
			return DeliveryResult(status=DeliveryStatus.QUEUED)

		result = await self._post_with_retries(url, body, event.type.value)
		if result.delivered:
			return result

		if self.config.requeue_on_exhaustion:
			length = self._enqueue(url, body, event.type.value)
			logger.warning(
				"event_queued_after_retries",
				event_type=event.type.value,
				attempts=result.attempts,
				queue_length=length,
			)
			result.status = DeliveryStatus.QUEUED
		else:
			logger.error(
				"event_delivery_failed",
				event_type=event.type.value,
				attempts=result.attempts,
				error=result.error,
			)
		return result

	def _enqueue(self, url: str, body: str, event_type: str) -> int:
		return self.queue.append(OfflineQueueEntry(url=url, body=body, event_type=event_type))

	async def _post_with_retries(self, url: str, body: str, event_type: str) -> DeliveryResult:
		attempts_allowed = self.config.max_retries + 1
		result = DeliveryResult(status=DeliveryStatus.FAILED)

		for attempt in range(attempts_allowed):
			result.attempts = attempt + 1
			try:
				response = await self._client.post(
					url,
					content=body.encode("utf-8"),
					headers=self._headers(),
					timeout=self.config.timeout_sec,
				)
				result.status_code = response.status_code
				if 200 <= response.status_code < 300:
					result.status = DeliveryStatus.DELIVERED
					result.error = None
					result.response = _response_body(response)
					logger.info(
						"event_delivered",
						event_type=event_type,
						status_code=response.status_code,
						attempts=result.attempts,
						response=result.response,
					)
					return result
				result.error = f"HTTP {response.status_code}"
			except httpx.HTTPError as e:
				result.status_code = None
				result.error = f"{type(e).__name__}: {e}"

			logger.warning(
				"delivery_attempt_failed",
				event_type=event_type,
				attempt=result.attempts,
				max_attempts=attempts_allowed,
				error=result.error,
			)
			if attempt < attempts_allowed - 1:
				await asyncio.sleep(self.config.retry_delay_sec)

		return result

	# Event builders

	async def send_location_update(
		self, location: LocationFix, steps: int = 0, distance_km: float = 0.0
	) -> DeliveryResult:
		user_id = self._require_user_id()
		return await self.submit(
			LocationUpdate(user_id=user_id, location=location, steps=steps, distance_km=distance_km)
		)

	async def send_fall_detected(
		self, location: LocationFix, fall_intensity: float, inactive_duration_sec: int
	) -> DeliveryResult:
		user_id = self._require_user_id()
		return await self.submit(FallDetected(
			user_id=user_id,
			location=location,
			fall_intensity=fall_intensity,
			inactive_duration_sec=inactive_duration_sec,
		))

	async def send_inactivity_alert(self, location: LocationFix, inactive_duration_sec: int) -> DeliveryResult:
		user_id = self._require_user_id()
		return await self.submit(
			InactivityAlert(user_id=user_id, location=location, inactive_duration_sec=inactive_duration_sec)
		)

	async def send_emergency(self, location: LocationFix) -> DeliveryResult:
		user_id = self._require_user_id()
		return await self.submit(EmergencyButtonPressed(user_id=user_id, location=location))

	# Offline queue

	async def flush_offline_queue(self) -> FlushResult:
		"""Drain a snapshot of the offline queue in enqueue order.

		Only one drain runs at a time; a concurrent call returns immediately
		with ``skipped=True``.
		"""
		if self._flush_lock.locked():
			logger.debug("offline_flush_skipped", reason="already_running")
			return FlushResult(skipped=True, remaining=len(self.queue))

		async with self._flush_lock:
			snapshot = self.queue.entries()
			result = FlushResult()
			if not snapshot:
				return result

			logger.info("offline_flush_started", entries=len(snapshot))
			processed: list[OfflineQueueEntry] = []
			keep: list[OfflineQueueEntry] = []

			for entry in snapshot:
				if not self.connectivity.is_online:
					logger.warning("offline_flush_interrupted", remaining=len(snapshot) - len(processed))
					break
				result.attempted += 1
				outcome = await self._post_with_retries(entry.url, entry.body, entry.event_type)
				processed.append(entry)
				if outcome.delivered:
					result.delivered += 1
				elif self.config.requeue_on_exhaustion:
					keep.append(entry)
					result.kept += 1
					result.failures.append(outcome.error or "unknown")
				else:
					result.dropped += 1
					result.failures.append(outcome.error or "unknown")
					logger.error(
						"offline_entry_dropped",
						event_type=entry.event_type,
						enqueued_at=entry.enqueued_at,
						error=outcome.error,
					)

			result.remaining = self.queue.complete_flush(processed, keep)
			logger.info("offline_flush_finished", **result.to_dict())
			return result

	def _on_connectivity_change(self, online: bool) -> None:
		if not online:
			return
		try:
			asyncio.get_running_loop()
		except RuntimeError:
			loop = self._loop
			if loop is None or loop.is_closed():
				logger.warning("offline_flush_not_scheduled", reason="no_event_loop")
				return
			loop.call_soon_threadsafe(self._schedule_flush)
			return
		self._schedule_flush()

	def _schedule_flush(self) -> None:
		task = asyncio.ensure_future(self.flush_offline_queue())
		self._flush_tasks.add(task)
		task.add_done_callback(self._flush_tasks.discard)

	def bind_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
		"""Remember the loop used for flushes triggered from other threads."""
		self._loop = loop or asyncio.get_running_loop()

	async def wait_for_flushes(self) -> None:
		"""Wait for automatically triggered flushes to finish."""
		while self._flush_tasks:
			await asyncio.gather(*list(self._flush_tasks), return_exceptions=True)

	async def close(self) -> None:
		await self.wait_for_flushes()
		self.connectivity.remove_listener(self._on_connectivity_change)
		if self._owns_client:
			await self._client.aclose()


def _response_body(response: httpx.Response) -> Any:
	try:
		return response.json()
	except ValueError:
		return response.text[:200]

"""Durable FIFO of serialized requests awaiting connectivity.

Entries live under the ``offlineQueue`` key of the state store, so every
mutation is a store critical section and survives process restarts.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from vigil.storage.state import OFFLINE_QUEUE

if TYPE_CHECKING:
	from vigil.storage.state import StateStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OfflineQueueEntry:
	url: str
	body: str
	event_type: str
	method: str = "POST"
	enqueued_at: float = field(default_factory=time.time)

	def to_dict(self) -> dict[str, Any]:
		return {
			"request": {"url": self.url, "method": self.method, "body": self.body},
			"event_type": self.event_type,
			"enqueued_at": self.enqueued_at,
		}

	@classmethod
	def from_dict(cls, data: dict[str, Any]) -> OfflineQueueEntry:
		request = data["request"]
		return cls(
			url=request["url"],
			method=request.get("method", "POST"),
			body=request["body"],
			event_type=data.get("event_type", ""),
			enqueued_at=float(data.get("enqueued_at", 0.0)),
		)


class OfflineQueue:
	"""Bounded by entry count (oldest dropped first) and by entry age."""

	def __init__(
		self,
		store: StateStore,
		max_entries: int = 500,
		max_age_sec: float = 7 * 24 * 3600.0,
	) -> None:
		self._store = store
		self.max_entries = max_entries
		self.max_age_sec = max_age_sec
		self._dropped = 0

	@property
	def dropped(self) -> int:
		"""Entries discarded by the bounds since construction."""
		return self._dropped

	def _raw(self) -> list[dict[str, Any]]:
		value = self._store.get(OFFLINE_QUEUE, [])
		return value if isinstance(value, list) else []

	def _parse(self, raw: list[dict[str, Any]]) -> list[OfflineQueueEntry]:
		entries = []
		for item in raw:
			try:
				entries.append(OfflineQueueEntry.from_dict(item))
			except (KeyError, TypeError, ValueError) as e:
				logger.error("offline_queue_corrupt_entry", entry=item, error=str(e))
		return entries

	def _apply_bounds(self, raw: list[dict[str, Any]], now: float) -> list[dict[str, Any]]:
		cutoff = now - self.max_age_sec
		kept = [item for item in raw if float(item.get("enqueued_at", 0.0)) >= cutoff]
		expired = len(raw) - len(kept)
		if expired:
			self._dropped += expired
			logger.warning("offline_queue_expired", dropped=expired, max_age_sec=self.max_age_sec)

		overflow = len(kept) - self.max_entries
		if overflow > 0:
			for item in kept[:overflow]:
				logger.warning(
					"offline_queue_overflow",
					event_type=item.get("event_type"),
					enqueued_at=item.get("enqueued_at"),
				)
			kept = kept[overflow:]
			self._dropped += overflow
		return kept

	def append(self, entry: OfflineQueueEntry) -> int:
		"""Add an entry at the tail. Returns the new queue length."""
		def push(raw: Any) -> list[dict[str, Any]]:
			items = raw if isinstance(raw, list) else []
			items.append(entry.to_dict())
			return self._apply_bounds(items, time.time())

		new_queue = self._store.mutate(OFFLINE_QUEUE, push, [])
		logger.info("offline_queue_append", event_type=entry.event_type, length=len(new_queue))
		return len(new_queue)

	def entries(self) -> list[OfflineQueueEntry]:
		"""Snapshot in enqueue order, with expired entries evicted first."""
		if not self._raw():
			return []
		bounded = self._store.mutate(
			OFFLINE_QUEUE,
			lambda current: self._apply_bounds(current if isinstance(current, list) else [], time.time()),
			[],
		)
		return self._parse(bounded)

	def complete_flush(self, processed: list[OfflineQueueEntry], keep: list[OfflineQueueEntry]) -> int:
		"""Remove ``processed`` entries and put ``keep`` back at the head.

		Entries appended while the flush was running stay behind ``keep``.
		Returns the new queue length.
		"""
		done = [entry.to_dict() for entry in processed]

		def replace(raw: Any) -> list[dict[str, Any]]:
			remaining = list(raw) if isinstance(raw, list) else []
			for item in done:
				if item in remaining:
					remaining.remove(item)
			return [entry.to_dict() for entry in keep] + remaining

		new_queue = self._store.mutate(OFFLINE_QUEUE, replace, [])
		return len(new_queue)

	def clear(self) -> int:
		"""Remove all entries. Returns how many were removed."""
		count = len(self._raw())
		self._store.set(OFFLINE_QUEUE, [])
		if count:
			logger.info("offline_queue_cleared", removed=count)
		return count

	def __len__(self) -> int:
		return len(self._raw())

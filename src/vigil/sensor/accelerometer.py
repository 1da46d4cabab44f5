"""Accelerometer interface and the motion sampler.

The hardware callback never blocks: it only pushes the reading into an
asyncio queue. A consumer task drains the queue, persists the sample and
feeds subscribers in arrival order.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from vigil.errors import PermissionDenied, SensorUnavailable

from .sample import SensorSample

if TYPE_CHECKING:
	from vigil.storage.state import StateStore
	from vigil.storage.writer import SampleRecorder

logger = logging.getLogger(__name__)

Reading = Callable[[float, float, float, float], None]  # x, y, z, timestamp
SampleHandler = Callable[[SensorSample], Awaitable[None] | None]


class Accelerometer(ABC):
	"""Platform accelerometer capability."""

	@abstractmethod
	def is_available(self) -> bool:
		pass

	@abstractmethod
	def request_permission(self) -> bool:
		"""Return True if the platform grants access."""
		pass

	@abstractmethod
	def set_update_interval(self, interval_ms: int) -> None:
		pass

	@abstractmethod
	def add_listener(self, callback: Reading) -> None:
		pass

	@abstractmethod
	def remove_all_listeners(self) -> None:
		pass


class MotionSampler:
	"""Streams SensorSamples from an Accelerometer at a fixed interval.

	Usage:
		sampler = MotionSampler(accelerometer, store)
		sampler.subscribe(detector_handler)
		await sampler.start()
		...
		await sampler.stop()
	"""

	def __init__(
		self,
		accelerometer: Accelerometer,
		store: StateStore,
		sample_interval_ms: int = 100,
		recorder: SampleRecorder | None = None,
		max_pending: int = 1000,
	) -> None:
		self._accelerometer = accelerometer
		self._store = store
		self.sample_interval_ms = sample_interval_ms
		self.recorder = recorder
		self._max_pending = max_pending
		self._subscribers: list[SampleHandler] = []
		self._queue: asyncio.Queue[SensorSample] | None = None
		self._consumer: asyncio.Task | None = None
		self._busy: asyncio.Lock | None = None
		self._loop: asyncio.AbstractEventLoop | None = None
		self._running = False
		self._samples_processed = 0
		self._samples_dropped = 0

	@property
	def is_running(self) -> bool:
		return self._running

	@property
	def samples_processed(self) -> int:
		return self._samples_processed

	@property
	def samples_dropped(self) -> int:
		return self._samples_dropped

	def subscribe(self, handler: SampleHandler) -> None:
		"""Register a handler called for every processed sample.

		Coroutine handlers are awaited before the next sample is processed.
		"""
		self._subscribers.append(handler)

	async def start(self) -> None:
		"""Begin sampling. No-op if already running."""
		if self._running:
			logger.debug("MotionSampler already running")
			return

		if not self._accelerometer.is_available():
			raise SensorUnavailable("Accelerometer not available")
		if not self._accelerometer.request_permission():
			raise PermissionDenied("motion", "Accelerometer permission not granted")

		self._loop = asyncio.get_running_loop()
		self._queue = asyncio.Queue(maxsize=self._max_pending)
		self._busy = asyncio.Lock()
		self._accelerometer.set_update_interval(self.sample_interval_ms)
		self._accelerometer.add_listener(self._on_reading)
		self._running = True
		self._consumer = asyncio.create_task(self._consume(self._queue, self._busy), name="motion_sampler_consumer")
		logger.info(f"MotionSampler started at {self.sample_interval_ms} ms")

	async def stop(self) -> None:
		"""Stop sampling. Always succeeds; no-op if not running."""
		if not self._running:
			return
		self._running = False
		try:
			self._accelerometer.remove_all_listeners()
		except Exception as e:
			logger.error(f"Error removing accelerometer listeners: {e}")

		if self._consumer is not None and self._busy is not None:
			# The sample in hand finishes before the consumer is cancelled.
			async with self._busy:
				self._consumer.cancel()
			try:
				await self._consumer
			except asyncio.CancelledError:
				pass
		self._consumer = None

		# Discard pending samples so drain() waiters are released.
		if self._queue is not None:
			while not self._queue.empty():
				self._queue.get_nowait()
				self._queue.task_done()
		self._queue = None
		logger.info(f"MotionSampler stopped after {self._samples_processed} samples")

	def _on_reading(self, x: float, y: float, z: float, timestamp: float | None = None) -> None:
		"""Hardware callback. May run on any thread; never blocks."""
		if not self._running or self._loop is None:
			return
		sample = SensorSample(x=float(x), y=float(y), z=float(z), timestamp=timestamp if timestamp is not None else time.time())
		try:
			running_loop = asyncio.get_running_loop()
		except RuntimeError:
			running_loop = None
		if running_loop is self._loop:
			self._enqueue(sample)
		else:
			self._loop.call_soon_threadsafe(self._enqueue, sample)

	def _enqueue(self, sample: SensorSample) -> None:
		if not self._running or self._queue is None:
			return
		try:
			self._queue.put_nowait(sample)
		except asyncio.QueueFull:
			self._samples_dropped += 1
			if self._samples_dropped % 100 == 1:
				logger.warning(f"Sample queue full, dropped {self._samples_dropped} samples")

	async def _consume(self, queue: asyncio.Queue[SensorSample], busy: asyncio.Lock) -> None:
		while True:
			sample = await queue.get()
			try:
				async with busy:
					await self._process(sample)
			finally:
				queue.task_done()

	async def _process(self, sample: SensorSample) -> None:
		try:
			await asyncio.to_thread(self._store.set_last_sensor_sample, sample)
			if self.recorder is not None:
				self.recorder.write_sample(sample)
			for handler in self._subscribers:
				try:
					outcome = handler(sample)
					if inspect.isawaitable(outcome):
						await outcome
				except Exception as e:
					logger.error(f"Sample handler error: {e}")
			self._samples_processed += 1
		except Exception as e:
			logger.error(f"Failed to process sample: {e}")

	async def drain(self) -> None:
		"""Wait until every queued sample has been processed."""
		if self._queue is not None:
			await self._queue.join()

"""Background task scheduler.

Replaces OS background-task registration with named recurring asyncio loops.
Registration state is persisted so ``ensure_registered`` stays idempotent
across process restarts. Each task can also be invoked once through
``run_task``, which is how an OS background trigger would call in.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from vigil.config import AppConfig
from vigil.storage.state import REGISTERED_TASKS

if TYPE_CHECKING:
	from vigil.monitor import SafetyMonitor
	from vigil.storage.state import StateStore

logger = structlog.get_logger(__name__)

INACTIVITY_CHECK = "inactivity-check"
OFFLINE_QUEUE_FLUSH = "offline-queue-flush"
TRACKING_RESUME = "tracking-resume"


@dataclass
class ScheduledTask:
	name: str
	interval_sec: float
	runner: Callable[[], Awaitable[Any]]
	runs: int = 0
	failures: int = 0
	last_error: str | None = None


class BackgroundScheduler:
	"""Runs the monitor's periodic work."""

	def __init__(
		self,
		monitor: SafetyMonitor,
		store: StateStore | None = None,
		config: AppConfig | None = None,
	) -> None:
		self.monitor = monitor
		self.store = store if store is not None else monitor.store
		self.config = config or monitor.config
		self.tasks: dict[str, ScheduledTask] = {
			INACTIVITY_CHECK: ScheduledTask(
				INACTIVITY_CHECK, self.config.inactivity.check_interval_sec, self._inactivity_check
			),
			OFFLINE_QUEUE_FLUSH: ScheduledTask(
				OFFLINE_QUEUE_FLUSH, self.config.dispatch.flush_interval_sec, self._offline_flush
			),
			TRACKING_RESUME: ScheduledTask(
				TRACKING_RESUME, self.config.inactivity.check_interval_sec, self._tracking_resume
			),
		}
		self._loops: dict[str, asyncio.Task] = {}

	@property
	def is_running(self) -> bool:
		return bool(self._loops)

	def registered(self) -> dict[str, float]:
		value = self.store.get(REGISTERED_TASKS, {})
		return value if isinstance(value, dict) else {}

	def ensure_registered(self) -> list[str]:
		"""Record every task as registered. Returns the names newly added."""
		wanted = {name: task.interval_sec for name, task in self.tasks.items()}
		added: list[str] = []

		def register(current: Any) -> dict[str, float]:
			registry = current if isinstance(current, dict) else {}
			for name, interval in wanted.items():
				if registry.get(name) != interval:
					added.append(name)
					registry[name] = interval
			return registry

		if all(self.registered().get(name) == interval for name, interval in wanted.items()):
			logger.debug("background_tasks_already_registered")
			return []

		self.store.mutate(REGISTERED_TASKS, register, {})
		logger.info("background_tasks_registered", tasks=added)
		return added

	async def run_task(self, name: str) -> Any:
		"""Run one task now. Errors are logged and returned as None."""
		task = self.tasks.get(name)
		if task is None:
			raise KeyError(f"Unknown background task: {name}")
		try:
			result = await task.runner()
		except Exception as e:
			task.failures += 1
			task.last_error = str(e)
			logger.exception("background_task_failed", task=name, error=str(e))
			return None
		task.runs += 1
		return result

	async def _loop(self, task: ScheduledTask) -> None:
		while True:
			await asyncio.sleep(task.interval_sec)
			await self.run_task(task.name)

	async def start(self) -> None:
		"""Register tasks and start their loops. No-op if already running."""
		if self._loops:
			return
		self.ensure_registered()
		for name, task in self.tasks.items():
			self._loops[name] = asyncio.create_task(self._loop(task), name=f"scheduler:{name}")
		logger.info("scheduler_started", tasks=list(self._loops))

	async def stop(self) -> None:
		loops = list(self._loops.values())
		self._loops.clear()
		for loop_task in loops:
			loop_task.cancel()
		for loop_task in loops:
			try:
				await loop_task
			except asyncio.CancelledError:
				pass
		if loops:
			logger.info("scheduler_stopped")

	# Task bodies

	async def _inactivity_check(self):
		if not self.monitor.is_tracking:
			return None
		return await self.monitor.check_inactivity()

	async def _offline_flush(self):
		if not self.monitor.connectivity.is_online:
			return None
		return await self.monitor.dispatcher.flush_offline_queue()

	async def _tracking_resume(self) -> bool:
		return await self.monitor.resume_tracking()

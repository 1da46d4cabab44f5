"""Pytest fixtures."""

import asyncio
import tempfile
from pathlib import Path

import httpx
import pytest

from vigil.config import AppConfig, DispatchConfig
from vigil.events import LocationFix
from vigil.sensor import MockAccelerometer, MockLocationProvider, SensorSample
from vigil.storage import StateStore


class RecordingTransport:
	"""httpx.MockTransport handler that records requests and replays scripted statuses.

	``statuses`` is consumed one entry per request; ``"error"`` raises a
	connection error and ``"timeout"`` a read timeout. Once exhausted every
	request gets ``default_status``.
	"""

	def __init__(self, statuses=None, default_status=200):
		self.statuses = list(statuses or [])
		self.default_status = default_status
		self.requests: list[httpx.Request] = []

	def __call__(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		status = self.statuses.pop(0) if self.statuses else self.default_status
		if status == "error":
			raise httpx.ConnectError("connection refused", request=request)
		if status == "timeout":
			raise httpx.ReadTimeout("timed out", request=request)
		return httpx.Response(status, json={"ok": 200 <= status < 300})

	@property
	def bodies(self) -> list[bytes]:
		return [r.content for r in self.requests]

	def client(self) -> httpx.AsyncClient:
		return httpx.AsyncClient(transport=httpx.MockTransport(self))


class GatedTransport(RecordingTransport):
	"""Holds every request until ``release`` is set."""

	def __init__(self):
		super().__init__()
		self.entered = asyncio.Event()
		self.release = asyncio.Event()

	async def __call__(self, request):
		self.entered.set()
		await self.release.wait()
		return super().__call__(request)


@pytest.fixture
def tmp_dir():
	"""Create a temporary directory for test files."""
	with tempfile.TemporaryDirectory() as d:
		yield Path(d)


@pytest.fixture
def store() -> StateStore:
	"""In-memory state store."""
	return StateStore()


@pytest.fixture
def transport() -> RecordingTransport:
	return RecordingTransport()


@pytest.fixture
def dispatch_config() -> DispatchConfig:
	"""Dispatch config without retry delays."""
	return DispatchConfig(endpoint="http://ingest.test/activity", retry_delay_sec=0.0)


@pytest.fixture
def app_config(dispatch_config, tmp_dir) -> AppConfig:
	config = AppConfig()
	config.dispatch = dispatch_config
	config.paths.data_dir = tmp_dir
	config.paths.state_file = tmp_dir / "state.json"
	return config


@pytest.fixture
def accelerometer() -> MockAccelerometer:
	return MockAccelerometer()


@pytest.fixture
def location_provider() -> MockLocationProvider:
	return MockLocationProvider()


@pytest.fixture
def home() -> LocationFix:
	return LocationFix(latitude=47.3769, longitude=8.5417, accuracy=5.0, timestamp=1000.0)


def make_samples(magnitude: float, start: float, count: int, interval_ms: float = 100.0) -> list[SensorSample]:
	"""Samples with the given magnitude on the z axis."""
	dt = interval_ms / 1000.0
	return [SensorSample(x=0.0, y=0.0, z=magnitude, timestamp=start + i * dt) for i in range(count)]

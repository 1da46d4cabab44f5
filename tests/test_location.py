"""Tests for location tracking."""

import asyncio
import math

import pytest

from vigil.errors import BackgroundPermissionDenied, PermissionDenied
from vigil.events import LocationFix
from vigil.geo import haversine_km
from vigil.sensor import AccuracyLevel, LocationTracker, MockLocationProvider


class Recorder:
	def __init__(self):
		self.calls = []

	def __call__(self, location, steps, distance_km):
		self.calls.append((location, steps, distance_km))


@pytest.fixture
def emitted():
	return Recorder()


@pytest.fixture
def tracker(location_provider, store, emitted):
	return LocationTracker(location_provider, store, emit=emitted)


class TestHaversine:
	def test_one_degree_of_longitude_at_equator(self):
		assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.195, abs=1e-3)

	def test_same_point(self):
		assert haversine_km(47.0, 8.0, 47.0, 8.0) == 0.0


class TestLocationTracker:
	def test_start_idempotent(self, tracker, location_provider):
		async def run():
			await tracker.start()
			await tracker.start(AccuracyLevel.HIGH)

		asyncio.run(run())
		assert tracker.is_running
		assert location_provider.subscribe_calls == 1
		assert location_provider.accuracy == AccuracyLevel.BALANCED

	def test_foreground_denied(self, store):
		tracker = LocationTracker(MockLocationProvider(foreground_granted=False), store)
		with pytest.raises(PermissionDenied) as exc:
			asyncio.run(tracker.start())
		assert exc.value.scope == "location-foreground"
		assert not isinstance(exc.value, BackgroundPermissionDenied)
		assert not tracker.is_running
		assert tracker.background_permission is None

	def test_background_denied_runs_foreground_only(self, store, emitted):
		provider = MockLocationProvider(background_granted=False)
		tracker = LocationTracker(provider, store, emit=emitted)
		asyncio.run(tracker.start())
		assert tracker.foreground_permission is True
		assert tracker.background_permission is False
		assert tracker.is_running
		assert provider.is_subscribed
		provider.emit_fix(1.0, 2.0, timestamp=1000.0)
		assert len(emitted.calls) == 1

	def test_every_fix_is_stored(self, tracker, location_provider, store):
		asyncio.run(tracker.start())
		location_provider.emit_fix(1.0, 2.0, timestamp=1000.0)
		location_provider.emit_fix(1.5, 2.5, timestamp=1010.0)
		stored = store.get_last_location()
		assert (stored.latitude, stored.longitude) == (1.5, 2.5)

	def test_interval_gate(self, tracker, location_provider, emitted):
		asyncio.run(tracker.start())
		for ts in (1000.0, 1030.0, 1061.0):
			location_provider.emit_fix(0.0, 0.0, timestamp=ts)
		assert [c[0].timestamp for c in emitted.calls] == [1000.0, 1061.0]
		assert tracker.fixes_received == 3
		assert tracker.updates_emitted == 2

	def test_distance_from_previous_update(self, tracker, location_provider, emitted):
		asyncio.run(tracker.start())
		location_provider.emit_fix(0.0, 0.0, timestamp=0.0)
		location_provider.emit_fix(0.0, 1.0, timestamp=60.0)
		assert emitted.calls[0][2] == 0.0
		assert emitted.calls[1][2] == pytest.approx(111.195, abs=1e-3)

	def test_steps_passed_through_and_reset(self, tracker, location_provider, emitted):
		asyncio.run(tracker.start())
		tracker.record_steps(40)
		tracker.record_steps(2)
		tracker.record_steps(-5)
		location_provider.emit_fix(0.0, 0.0, timestamp=0.0)
		location_provider.emit_fix(0.0, 0.0, timestamp=60.0)
		assert [c[1] for c in emitted.calls] == [42, 0]

	def test_invalid_fix_ignored(self, tracker, store, emitted):
		asyncio.run(tracker.start())
		assert not tracker.handle_fix(LocationFix(latitude=math.nan, longitude=0.0, timestamp=1.0))
		assert not tracker.handle_fix(LocationFix(latitude=91.0, longitude=0.0, timestamp=2.0))
		assert store.get_last_location() is None
		assert emitted.calls == []

	def test_stop_idempotent(self, tracker, location_provider, emitted):
		async def run():
			await tracker.start()
			await tracker.stop()
			await tracker.stop()

		asyncio.run(run())
		assert not tracker.is_running
		assert not location_provider.is_subscribed
		location_provider.emit_fix(0.0, 0.0, timestamp=0.0)
		assert emitted.calls == []

"""Tests for the motion sampler and mock accelerometer."""

import asyncio
import threading

import pytest

from vigil.errors import PermissionDenied, SensorUnavailable
from vigil.sensor import (
	MockAccelerometer,
	MockMotionConfig,
	MotionSampler,
	SensorSample,
	generate_samples,
)
from vigil.storage.state import StateStore


class TestMotionSampler:
	def test_start_twice_registers_once(self, accelerometer, store):
		async def run():
			sampler = MotionSampler(accelerometer, store)
			await sampler.start()
			await sampler.start()
			assert sampler.is_running
			assert accelerometer.listener_count == 1
			assert accelerometer.add_listener_calls == 1
			await sampler.stop()

		asyncio.run(run())

	def test_sets_update_interval(self, accelerometer, store):
		async def run():
			sampler = MotionSampler(accelerometer, store, sample_interval_ms=50)
			await sampler.start()
			await sampler.stop()

		asyncio.run(run())
		assert accelerometer.update_interval_ms == 50

	def test_processes_samples_in_order(self, accelerometer, store):
		seen = []

		async def run():
			sampler = MotionSampler(accelerometer, store)
			sampler.subscribe(seen.append)
			await sampler.start()
			for i in range(5):
				accelerometer.emit(0.0, 0.0, 1.0 + i, timestamp=100.0 + i)
			await sampler.drain()
			assert sampler.samples_processed == 5
			await sampler.stop()

		asyncio.run(run())
		assert [s.timestamp for s in seen] == [100.0, 101.0, 102.0, 103.0, 104.0]
		assert store.get_last_sensor_sample() == SensorSample(0.0, 0.0, 5.0, timestamp=104.0)

	def test_samples_after_stop_ignored(self, accelerometer, store):
		seen = []

		async def run():
			sampler = MotionSampler(accelerometer, store)
			sampler.subscribe(seen.append)
			await sampler.start()
			callback = accelerometer._listeners[0]
			await sampler.stop()
			callback(0.0, 0.0, 1.0, 1.0)
			await asyncio.sleep(0)
			assert not sampler.is_running

		asyncio.run(run())
		assert seen == []
		assert accelerometer.listener_count == 0

	def test_stop_when_not_running(self, accelerometer, store):
		async def run():
			await MotionSampler(accelerometer, store).stop()

		asyncio.run(run())

	def test_unavailable_sensor(self, store):
		sampler = MotionSampler(MockAccelerometer(available=False), store)
		with pytest.raises(SensorUnavailable):
			asyncio.run(sampler.start())
		assert not sampler.is_running

	def test_permission_denied(self, store):
		accelerometer = MockAccelerometer(permission_granted=False)
		sampler = MotionSampler(accelerometer, store)
		with pytest.raises(PermissionDenied) as exc:
			asyncio.run(sampler.start())
		assert exc.value.scope == "motion"
		assert accelerometer.listener_count == 0

	def test_handler_error_does_not_stop_stream(self, accelerometer, store):
		seen = []

		def broken(sample):
			raise RuntimeError("boom")

		async def run():
			sampler = MotionSampler(accelerometer, store)
			sampler.subscribe(broken)
			sampler.subscribe(seen.append)
			await sampler.start()
			accelerometer.emit(0.0, 0.0, 1.0, timestamp=1.0)
			accelerometer.emit(0.0, 0.0, 1.0, timestamp=2.0)
			await sampler.drain()
			await sampler.stop()

		asyncio.run(run())
		assert len(seen) == 2

	def test_coroutine_handler_is_awaited(self, accelerometer, store):
		seen = []

		async def handler(sample):
			await asyncio.sleep(0)
			seen.append(sample.timestamp)

		async def run():
			sampler = MotionSampler(accelerometer, store)
			sampler.subscribe(handler)
			await sampler.start()
			accelerometer.emit(0.0, 0.0, 1.0, timestamp=1.0)
			accelerometer.emit(0.0, 0.0, 1.0, timestamp=2.0)
			await sampler.drain()
			await sampler.stop()

		asyncio.run(run())
		assert seen == [1.0, 2.0]

	def test_stop_waits_for_sample_in_progress(self, accelerometer, store):
		finished = []

		async def run():
			entered = asyncio.Event()
			release = asyncio.Event()

			async def slow(sample):
				entered.set()
				await release.wait()
				finished.append(sample.timestamp)

			sampler = MotionSampler(accelerometer, store)
			sampler.subscribe(slow)
			await sampler.start()
			accelerometer.emit(0.0, 0.0, 1.0, timestamp=1.0)
			await entered.wait()
			stopping = asyncio.create_task(sampler.stop())
			await asyncio.sleep(0)
			assert not stopping.done()
			release.set()
			await stopping
			assert not sampler.is_running

		asyncio.run(run())
		assert finished == [1.0]

	def test_reading_from_other_thread(self, accelerometer, store):
		seen = []

		async def run():
			sampler = MotionSampler(accelerometer, store)
			sampler.subscribe(seen.append)
			await sampler.start()
			thread = threading.Thread(target=accelerometer.emit, args=(0.0, 0.0, 1.0, 7.0))
			thread.start()
			thread.join()
			await asyncio.sleep(0.05)
			await sampler.drain()
			await sampler.stop()

		asyncio.run(run())
		assert [s.timestamp for s in seen] == [7.0]

	def test_persists_to_file_store(self, accelerometer, tmp_dir):
		path = tmp_dir / "state.json"

		async def run():
			sampler = MotionSampler(accelerometer, StateStore(path))
			await sampler.start()
			accelerometer.emit(0.1, 0.2, 0.9, timestamp=3.0)
			await sampler.drain()
			await sampler.stop()

		asyncio.run(run())
		assert StateStore(path).get_last_sensor_sample().timestamp == 3.0


class TestGenerateSamples:
	def test_count_and_spacing(self):
		samples = list(generate_samples(MockMotionConfig(seed=0), 1000.0, 20))
		assert len(samples) == 20
		assert samples[1].timestamp - samples[0].timestamp == pytest.approx(0.1)

	def test_resting_near_one_g(self):
		samples = list(generate_samples(MockMotionConfig(seed=0), 0.0, 50))
		assert all(abs(s.magnitude - 1.0) < 0.2 for s in samples)

	def test_fall_profile_has_impact(self):
		config = MockMotionConfig(profile="fall", fall_at_s=1.0, seed=0)
		samples = list(generate_samples(config, 0.0, 40))
		assert max(s.magnitude for s in samples) > 2.5

	def test_seed_is_reproducible(self):
		a = list(generate_samples(MockMotionConfig(profile="walking", seed=4), 0.0, 10))
		b = list(generate_samples(MockMotionConfig(profile="walking", seed=4), 0.0, 10))
		assert a == b

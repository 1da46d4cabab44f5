"""Command-line interface."""

from __future__ import annotations

import asyncio
import sys
import time
from datetime import datetime
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.table import Table

from vigil.config import AppConfig, configure_logging, get_config, set_config

logger = structlog.get_logger(__name__)
console = Console()


def _load_config(config_path: str | None) -> AppConfig:
	if config_path:
		return AppConfig.from_file(config_path)
	return get_config()


def _fmt_time(ts: float) -> str:
	return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


@click.group()
@click.version_option(package_name="vigil")
@click.option("--config", "config_path", type=click.Path(exists=True), help="JSON config file")
@click.option("--log-level", default="WARNING", help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str) -> None:
	"""Vigil - fall, inactivity and location monitoring."""
	configure_logging(log_level)
	ctx.obj = _load_config(config_path)


@main.command()
@click.option("--profile", type=click.Choice(["resting", "walking", "fall"]), default="fall", help="Motion profile")
@click.option("-d", "--duration", type=float, default=10.0, help="Simulated seconds")
@click.option("--seed", type=int, default=None, help="Random seed")
@click.option("-o", "--output", type=click.Path(), help="Record samples to a .parquet file")
@click.pass_obj
def simulate(config: AppConfig, profile: str, duration: float, seed: int | None, output: str | None) -> None:
	"""Run fall and inactivity detection over a synthetic motion stream."""
	from vigil.processing import FallDetectionConfig, FallDetector, InactivityMonitor, is_movement
	from vigil.sensor import MockMotionConfig, generate_samples
	from vigil.storage import SampleRecorder, SessionMetadata, StateStore

	interval_ms = config.sensor.sample_interval_ms
	count = int(duration * 1000 / interval_ms)
	start = time.time()

	store = StateStore()
	detector = FallDetector(FallDetectionConfig.from_sensor_config(config.sensor), store)
	inactivity = InactivityMonitor(store, config.inactivity, clock=lambda: start)
	recorder = None
	if output:
		recorder = SampleRecorder(output, SessionMetadata(device="mock", sample_interval_ms=interval_ms))
		console.print(f"Writing to: {output}")

	console.print(f"[bold green]Vigil[/] - simulating {duration:.1f}s of '{profile}' ({count} samples)")

	samples = generate_samples(MockMotionConfig(profile=profile, seed=seed), start, count, interval_ms)
	last_ts = start
	try:
		for sample in samples:
			last_ts = sample.timestamp
			if recorder:
				recorder.write_sample(sample)
			result = detector.process_sample(sample)
			if is_movement(result, detector.window, config.sensor.fall_threshold, config.inactivity.movement_threshold):
				inactivity.record_movement(sample.timestamp)
	finally:
		if recorder:
			recorder.close()

	falls = detector.get_completed_events()
	t = Table(title="Detected Falls")
	t.add_column("Time", style="cyan")
	t.add_column("Intensity", style="red")
	t.add_column("Peak", style="yellow")
	t.add_column("Duration", style="dim")
	for event in falls:
		t.add_row(
			_fmt_time(event.timestamp),
			f"{event.intensity:.2f} g",
			f"{event.peak_magnitude:.2f} g",
			f"{event.duration * 1000:.0f} ms",
		)
	console.print(t)

	idle = last_ts - (inactivity.last_movement_time or start)
	console.print(
		f"Falls: [bold]{len(falls)}[/]  detector: {detector.state.value}  "
		f"idle at end: {idle:.1f}s (threshold {config.inactivity.threshold_sec:.0f}s)"
	)


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.pass_obj
def replay(config: AppConfig, path: str) -> None:
	"""Run fall detection over a recorded .parquet session."""
	from vigil.processing import FallDetectionConfig, FallDetector
	from vigil.storage import RecordingReader

	try:
		reader = RecordingReader(path)
	except (FileNotFoundError, ValueError) as e:
		console.print(f"[red]Error: {e}[/]")
		sys.exit(1)

	meta = reader.metadata
	console.print(f"[bold]{Path(path).name}[/] session={meta.get('session_id', '?')} rows={meta['num_rows']}")

	detector = FallDetector(FallDetectionConfig.from_sensor_config(config.sensor))
	samples = 0
	for sample in reader.iter_samples():
		detector.process_sample(sample)
		samples += 1

	t = Table(title="Detected Falls")
	t.add_column("Time", style="cyan")
	t.add_column("Intensity", style="red")
	t.add_column("Duration", style="dim")
	for event in detector.get_completed_events():
		t.add_row(_fmt_time(event.timestamp), f"{event.intensity:.2f} g", f"{event.duration * 1000:.0f} ms")
	console.print(t)
	console.print(f"{samples} samples, {len(detector.get_completed_events())} falls")


@main.group()
def queue() -> None:
	"""Inspect the durable offline queue."""
	pass


def _open_queue(config: AppConfig):
	from vigil.delivery import OfflineQueue
	from vigil.storage import StateStore

	store = StateStore(config.paths.state_file)
	return OfflineQueue(store, config.dispatch.queue_max_entries, config.dispatch.queue_max_age_sec)


@queue.command("show")
@click.pass_obj
def queue_show(config: AppConfig) -> None:
	"""List queued requests in delivery order."""
	entries = _open_queue(config).entries()
	if not entries:
		console.print("[green]Offline queue is empty[/]")
		return

	t = Table(title=f"Offline Queue ({len(entries)})")
	t.add_column("#", style="dim")
	t.add_column("Type", style="cyan")
	t.add_column("Enqueued", style="yellow")
	t.add_column("URL", style="dim")
	for i, entry in enumerate(entries, 1):
		t.add_row(str(i), entry.event_type, _fmt_time(entry.enqueued_at), entry.url)
	console.print(t)


@queue.command("clear")
@click.confirmation_option(prompt="Discard all queued alerts?")
@click.pass_obj
def queue_clear(config: AppConfig) -> None:
	"""Discard every queued request."""
	removed = _open_queue(config).clear()
	console.print(f"[yellow]Removed {removed} entries[/]")


@main.command()
@click.argument("event_type", type=click.Choice(["emergency", "location", "inactivity", "fall"]))
@click.option("--user-id", type=int, required=True, help="User id")
@click.option("--lat", type=float, default=0.0, help="Latitude")
@click.option("--lon", type=float, default=0.0, help="Longitude")
@click.option("--accuracy", type=float, default=None, help="Location accuracy (m)")
@click.option("--endpoint", default=None, help="Override ingest endpoint")
@click.pass_obj
def send(
	config: AppConfig,
	event_type: str,
	user_id: int,
	lat: float,
	lon: float,
	accuracy: float | None,
	endpoint: str | None,
) -> None:
	"""Send one event to the ingest endpoint (connectivity check)."""
	from vigil.delivery import EventDispatcher
	from vigil.errors import VigilError
	from vigil.events import LocationFix
	from vigil.storage import StateStore

	if endpoint:
		config.dispatch.endpoint = endpoint
	config.dispatch.requeue_on_exhaustion = False
	location = LocationFix(latitude=lat, longitude=lon, accuracy=accuracy)

	async def run():
		dispatcher = EventDispatcher(config.dispatch, StateStore())
		try:
			dispatcher.set_user_id(user_id)
			if event_type == "emergency":
				return await dispatcher.send_emergency(location)
			if event_type == "location":
				return await dispatcher.send_location_update(location)
			if event_type == "inactivity":
				return await dispatcher.send_inactivity_alert(location, int(config.inactivity.threshold_sec))
			return await dispatcher.send_fall_detected(location, config.sensor.fall_threshold, config.sensor.post_fall_inactivity_sec)
		finally:
			await dispatcher.close()

	try:
		result = asyncio.run(run()).raise_for_failure()
	except (VigilError, ValueError) as e:
		console.print(f"[red]Error: {e}[/]")
		sys.exit(1)

	console.print(f"[green]Delivered[/] after {result.attempts} attempt(s), HTTP {result.status_code}")


@main.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", type=int, default=None, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_obj
def serve(config: AppConfig, host: str | None, port: int | None, reload: bool) -> None:
	"""Run the local control API."""
	import uvicorn

	config.ensure_dirs()
	set_config(config)
	uvicorn.run(
		"vigil.api.main:app",
		host=host or config.api.host,
		port=port or config.api.port,
		reload=reload,
		log_level=config.api.log_level.lower(),
	)


if __name__ == "__main__":
	main()

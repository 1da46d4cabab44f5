"""Centralized configuration for the vigil monitor.

All configuration can be set via environment variables or config file.
Environment variables take precedence over config file values.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog


@dataclass
class SensorConfig:
	"""Accelerometer sampling and fall detection thresholds."""

	sample_interval_ms: int = 100
	window_size: int = 10  # samples averaged for the magnitude
	fall_threshold: float = 2.5  # g
	min_fall_duration_ms: int = 200
	fall_cooldown_ms: int = 30_000
	post_fall_inactivity_sec: int = 300  # reported with every fall
	min_window_samples: int = 1  # samples required before evaluating
	record_samples: bool = False  # write samples to parquet for diagnostics


@dataclass
class InactivityConfig:
	"""Inactivity detection configuration."""

	threshold_sec: float = 300.0
	check_interval_sec: float = 60.0
	# Minimum sample-to-sample change (g) counted as movement. None = any
	# sample that is not a fall candidate counts as movement.
	movement_threshold: float | None = 0.1
	dnd_enabled: bool = False
	dnd_start: str = "22:00"
	dnd_end: str = "07:00"


@dataclass
class LocationConfig:
	"""Location tracking configuration."""

	accuracy: str = "balanced"
	time_interval_ms: int = 60_000  # requested OS update cadence
	distance_interval_m: float = 10.0
	min_update_interval_sec: float = 60.0  # gate for LOCATION_UPDATE events


@dataclass
class DispatchConfig:
	"""Event delivery configuration."""

	endpoint: str = "http://localhost:8080/activity"
	timeout_sec: float = 10.0
	max_retries: int = 3
	retry_delay_sec: float = 1.0
	requeue_on_exhaustion: bool = True
	auth_token: str | None = None
	queue_max_entries: int = 500
	queue_max_age_sec: float = 7 * 24 * 3600.0
	flush_interval_sec: float = 300.0  # periodic background flush

	def validate(self) -> list[str]:
		"""Validate configuration values. Returns list of error messages."""
		errors = []

		if not self.endpoint.startswith(("http://", "https://")):
			errors.append(f"endpoint ({self.endpoint}) must be an http(s) URL")
		if self.timeout_sec <= 0:
			errors.append(f"timeout_sec ({self.timeout_sec}) must be positive")
		if self.max_retries < 0:
			errors.append(f"max_retries ({self.max_retries}) must be >= 0")
		if self.retry_delay_sec < 0:
			errors.append(f"retry_delay_sec ({self.retry_delay_sec}) must be >= 0")
		if self.queue_max_entries < 1:
			errors.append(f"queue_max_entries ({self.queue_max_entries}) must be >= 1")
		if self.queue_max_age_sec <= 0:
			errors.append(f"queue_max_age_sec ({self.queue_max_age_sec}) must be positive")

		return errors


@dataclass
class APIConfig:
	"""Local control API configuration."""

	host: str = "127.0.0.1"
	port: int = 8000
	cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:8081"])
	log_level: str = "INFO"


@dataclass
class PathsConfig:
	"""File paths configuration."""

	data_dir: Path = field(default_factory=lambda: Path("data"))
	state_file: Path = field(default_factory=lambda: Path("data") / "state.json")


@dataclass
class AppConfig:
	"""Complete application configuration."""

	sensor: SensorConfig = field(default_factory=SensorConfig)
	inactivity: InactivityConfig = field(default_factory=InactivityConfig)
	location: LocationConfig = field(default_factory=LocationConfig)
	dispatch: DispatchConfig = field(default_factory=DispatchConfig)
	api: APIConfig = field(default_factory=APIConfig)
	paths: PathsConfig = field(default_factory=PathsConfig)

	@classmethod
	def from_env(cls) -> AppConfig:
		"""Load configuration from environment variables."""
		config = cls()

		# Sensor config
		if interval := os.environ.get("VIGIL_SAMPLE_INTERVAL_MS"):
			config.sensor.sample_interval_ms = int(interval)
		if threshold := os.environ.get("VIGIL_FALL_THRESHOLD"):
			config.sensor.fall_threshold = float(threshold)
		if duration := os.environ.get("VIGIL_MIN_FALL_DURATION_MS"):
			config.sensor.min_fall_duration_ms = int(duration)
		if cooldown := os.environ.get("VIGIL_FALL_COOLDOWN_MS"):
			config.sensor.fall_cooldown_ms = int(cooldown)
		config.sensor.record_samples = os.environ.get("VIGIL_RECORD_SAMPLES", "").lower() == "true"

		# Inactivity config
		if inactivity := os.environ.get("VIGIL_INACTIVITY_THRESHOLD_SEC"):
			config.inactivity.threshold_sec = float(inactivity)
		if check := os.environ.get("VIGIL_INACTIVITY_CHECK_SEC"):
			config.inactivity.check_interval_sec = float(check)
		movement = os.environ.get("VIGIL_MOVEMENT_THRESHOLD", "")
		if movement.lower() == "none":
			config.inactivity.movement_threshold = None
		elif movement:
			config.inactivity.movement_threshold = float(movement)

		# Location config
		config.location.accuracy = os.environ.get("VIGIL_LOCATION_ACCURACY", config.location.accuracy)

		# Dispatch config
		config.dispatch.endpoint = os.environ.get("VIGIL_INGEST_ENDPOINT", config.dispatch.endpoint)
		config.dispatch.auth_token = os.environ.get("VIGIL_AUTH_TOKEN") or None
		if timeout := os.environ.get("VIGIL_HTTP_TIMEOUT_SEC"):
			config.dispatch.timeout_sec = float(timeout)
		if retries := os.environ.get("VIGIL_MAX_RETRIES"):
			config.dispatch.max_retries = int(retries)
		requeue = os.environ.get("VIGIL_REQUEUE_ON_EXHAUSTION", "").lower()
		if requeue:
			config.dispatch.requeue_on_exhaustion = requeue == "true"

		# API config
		config.api.host = os.environ.get("VIGIL_API_HOST", config.api.host)
		config.api.port = int(os.environ.get("VIGIL_API_PORT", config.api.port))
		config.api.log_level = os.environ.get("VIGIL_LOG_LEVEL", config.api.log_level)

		# Paths config
		if data_dir := os.environ.get("VIGIL_DATA_DIR"):
			config.paths.data_dir = Path(data_dir)
			config.paths.state_file = Path(data_dir) / "state.json"
		if state_file := os.environ.get("VIGIL_STATE_FILE"):
			config.paths.state_file = Path(state_file)

		return config

	@classmethod
	def from_file(cls, path: str | Path) -> AppConfig:
		"""Load configuration from JSON file."""
		with open(path) as f:
			data = json.load(f)
		return cls._from_dict(data)

	@classmethod
	def _from_dict(cls, data: dict[str, Any]) -> AppConfig:
		"""Create config from dictionary."""
		config = cls()

		for section in ("sensor", "inactivity", "location", "dispatch", "api"):
			if section in data:
				target = getattr(config, section)
				for key, value in data[section].items():
					if hasattr(target, key):
						setattr(target, key, value)

		if "paths" in data:
			for key, value in data["paths"].items():
				if hasattr(config.paths, key):
					setattr(config.paths, key, Path(value))

		return config

	def ensure_dirs(self) -> None:
		"""Create all configured directories if they don't exist."""
		self.paths.data_dir.mkdir(parents=True, exist_ok=True)
		self.paths.state_file.parent.mkdir(parents=True, exist_ok=True)

	def validate(self) -> list[str]:
		"""Validate all configuration values. Returns list of error messages."""
		errors = []

		# Validate sensor config
		if self.sensor.sample_interval_ms <= 0:
			errors.append(f"sensor.sample_interval_ms ({self.sensor.sample_interval_ms}) must be positive")
		if self.sensor.window_size < 1:
			errors.append(f"sensor.window_size ({self.sensor.window_size}) must be >= 1")
		if not 1 <= self.sensor.min_window_samples <= self.sensor.window_size:
			errors.append(
				f"sensor.min_window_samples ({self.sensor.min_window_samples}) must be between 1 and "
				f"window_size ({self.sensor.window_size})"
			)
		if self.sensor.fall_threshold <= 0:
			errors.append(f"sensor.fall_threshold ({self.sensor.fall_threshold}) must be positive")
		if self.sensor.min_fall_duration_ms < 0:
			errors.append(f"sensor.min_fall_duration_ms ({self.sensor.min_fall_duration_ms}) must be >= 0")
		if self.sensor.fall_cooldown_ms < 0:
			errors.append(f"sensor.fall_cooldown_ms ({self.sensor.fall_cooldown_ms}) must be >= 0")

		# Validate inactivity config
		if self.inactivity.threshold_sec <= 0:
			errors.append(f"inactivity.threshold_sec ({self.inactivity.threshold_sec}) must be positive")
		if self.inactivity.check_interval_sec <= 0:
			errors.append(f"inactivity.check_interval_sec ({self.inactivity.check_interval_sec}) must be positive")
		if self.inactivity.movement_threshold is not None and self.inactivity.movement_threshold < 0:
			errors.append(f"inactivity.movement_threshold ({self.inactivity.movement_threshold}) must be >= 0")

		# Validate location config
		if self.location.min_update_interval_sec < 0:
			errors.append(
				f"location.min_update_interval_sec ({self.location.min_update_interval_sec}) must be >= 0"
			)

		errors.extend(f"dispatch.{e}" for e in self.dispatch.validate())

		return errors


# Global config instance
_config: AppConfig | None = None


def get_config() -> AppConfig:
	"""Get the global configuration instance."""
	global _config
	if _config is None:
		_config = AppConfig.from_env()
	return _config


def set_config(config: AppConfig) -> None:
	"""Install ``config`` as the global configuration."""
	global _config
	_config = config


def configure_logging(level: str = "INFO") -> None:
	"""Configure structured logging for the application."""
	log_level = getattr(logging, level.upper(), logging.INFO)

	structlog.configure(
		processors=[
			structlog.stdlib.filter_by_level,
			structlog.stdlib.add_logger_name,
			structlog.stdlib.add_log_level,
			structlog.stdlib.PositionalArgumentsFormatter(),
			structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
			structlog.processors.StackInfoRenderer(),
			structlog.processors.format_exc_info,
			structlog.processors.UnicodeDecoder(),
			structlog.dev.ConsoleRenderer(),
		],
		wrapper_class=structlog.stdlib.BoundLogger,
		context_class=dict,
		logger_factory=structlog.stdlib.LoggerFactory(),
		cache_logger_on_first_use=True,
	)

	logging.basicConfig(
		format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
		level=log_level,
	)

	# Reduce noise from third-party libraries
	logging.getLogger("httpx").setLevel(logging.WARNING)
	logging.getLogger("httpcore").setLevel(logging.WARNING)

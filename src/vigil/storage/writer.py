"""Diagnostic recording of accelerometer samples to Parquet."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from vigil.sensor.sample import SensorSample

logger = logging.getLogger(__name__)

# Schema version for compatibility checking
SCHEMA_VERSION = "1.0.0"

SAMPLE_SCHEMA = pa.schema([
	("timestamp", pa.float64()),
	("datetime", pa.timestamp("us")),
	("x", pa.float64()),
	("y", pa.float64()),
	("z", pa.float64()),
	("magnitude", pa.float64()),
])


@dataclass
class SessionMetadata:
	session_id: str = ""
	start_time: datetime = field(default_factory=datetime.now)
	user_id: int | None = None
	device: str = "unknown"
	sample_interval_ms: int = 100
	schema_version: str = SCHEMA_VERSION

	def __post_init__(self) -> None:
		if not self.session_id:
			self.session_id = self.start_time.strftime("%Y%m%d_%H%M%S")

	def to_parquet_metadata(self) -> dict[bytes, bytes]:
		return {
			b"schema_version": self.schema_version.encode(),
			b"session_id": self.session_id.encode(),
			b"start_time": self.start_time.isoformat().encode(),
			b"user_id": str(self.user_id or "").encode(),
			b"device": self.device.encode(),
			b"sample_interval_ms": str(self.sample_interval_ms).encode(),
		}


@dataclass
class WriteMetrics:
	"""Metrics for tracking write performance."""

	samples_written: int = 0
	write_errors: int = 0
	bytes_written: int = 0
	last_error: str | None = None

	def to_dict(self) -> dict[str, Any]:
		return {
			"samples_written": self.samples_written,
			"write_errors": self.write_errors,
			"bytes_written": self.bytes_written,
			"last_error": self.last_error,
		}


class SampleRecorder:
	"""Buffered Parquet writer for accelerometer samples. Best for pandas analysis."""

	def __init__(
		self,
		path: str | Path,
		metadata: SessionMetadata | None = None,
		batch_size: int = 600,
	) -> None:
		self.path = Path(path)
		self.metadata = metadata or SessionMetadata()
		self.batch_size = batch_size
		self._metrics = WriteMetrics()
		self.path.parent.mkdir(parents=True, exist_ok=True)

		self._buffer: list[dict[str, Any]] = []
		self._writer: pq.ParquetWriter | None = None

		logger.info(f"SampleRecorder initialized: {self.path}")

	@property
	def metrics(self) -> WriteMetrics:
		return self._metrics

	def write_sample(self, sample: SensorSample) -> bool:
		try:
			self._buffer.append({
				"timestamp": sample.timestamp,
				"datetime": datetime.fromtimestamp(sample.timestamp),
				"x": sample.x,
				"y": sample.y,
				"z": sample.z,
				"magnitude": sample.magnitude,
			})
			self._metrics.samples_written += 1

			if len(self._buffer) >= self.batch_size:
				return self.flush()
			return True

		except (ValueError, OSError, OverflowError) as e:
			self._metrics.write_errors += 1
			self._metrics.last_error = str(e)
			logger.error(f"SampleRecorder write_sample error: {e}")
			return False

	def flush(self) -> bool:
		if not self._buffer:
			return True

		try:
			df = pd.DataFrame(self._buffer)
			table = pa.Table.from_pandas(df, schema=SAMPLE_SCHEMA, preserve_index=False)

			if self._writer is None:
				self._writer = pq.ParquetWriter(
					self.path,
					SAMPLE_SCHEMA.with_metadata(self.metadata.to_parquet_metadata()),
					compression="snappy",
					coerce_timestamps="us",
				)

			self._writer.write_table(table)
			self._metrics.bytes_written += table.nbytes
			self._buffer.clear()
			return True

		except (pa.ArrowException, OSError, ValueError) as e:
			self._metrics.write_errors += 1
			self._metrics.last_error = str(e)
			logger.error(f"SampleRecorder flush error: {e}")
			return False

	def close(self) -> None:
		self.flush()
		if self._writer:
			self._writer.close()
			self._writer = None
		logger.info(
			f"SampleRecorder closed: samples={self._metrics.samples_written}, "
			f"errors={self._metrics.write_errors}"
		)

	def __enter__(self) -> SampleRecorder:
		return self

	def __exit__(self, exc_type, exc_val, exc_tb) -> None:
		self.close()

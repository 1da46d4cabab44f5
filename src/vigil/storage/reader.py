"""Read recorded accelerometer sessions."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pandas as pd
import pyarrow.parquet as pq
import structlog

from vigil.sensor.sample import SensorSample

logger = structlog.get_logger(__name__)


class RecordingReader:
	"""Read a Parquet recording written by SampleRecorder."""

	def __init__(self, path: str | Path) -> None:
		self.path = Path(path)
		if not self.path.exists():
			raise FileNotFoundError(f"Not found: {self.path}")
		if self.path.suffix not in (".parquet", ".pq"):
			raise ValueError(f"Unsupported format: {self.path.suffix}")
		logger.info("recording_reader_init", path=str(self.path))

	@property
	def metadata(self) -> dict[str, Any]:
		pf = pq.read_metadata(self.path)
		raw = pf.metadata or {}
		meta = {k.decode(): v.decode() for k, v in raw.items() if not k.startswith(b"ARROW")}
		meta.update({"num_rows": pf.num_rows, "format": "parquet"})
		return meta

	def get_dataframe(self) -> pd.DataFrame:
		return pd.read_parquet(self.path)

	def iter_samples(self) -> Iterator[SensorSample]:
		df = pd.read_parquet(self.path, columns=["timestamp", "x", "y", "z"])
		for row in df.itertuples(index=False):
			yield SensorSample(x=float(row.x), y=float(row.y), z=float(row.z), timestamp=float(row.timestamp))

	def get_time_range(self) -> tuple[float, float]:
		df = pd.read_parquet(self.path, columns=["timestamp"])
		if df.empty:
			return 0.0, 0.0
		return float(df["timestamp"].min()), float(df["timestamp"].max())

"""Accelerometer samples and the time-bounded sliding window."""
from __future__ import annotations

import math
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass(frozen=True)
class SensorSample:
	"""One accelerometer reading in g. Timestamp is epoch seconds."""
	x: float
	y: float
	z: float
	timestamp: float

	@property
	def magnitude(self) -> float:
		return math.sqrt(self.x**2 + self.y**2 + self.z**2)

	def to_dict(self) -> dict[str, Any]:
		return {"x": self.x, "y": self.y, "z": self.z, "timestamp": self.timestamp}

	@classmethod
	def from_dict(cls, data: dict[str, Any]) -> SensorSample:
		return cls(
			x=float(data["x"]),
			y=float(data["y"]),
			z=float(data["z"]),
			timestamp=float(data["timestamp"]),
		)


class SlidingWindow:
	"""Chronological window of the most recent samples.

	Holds at most ``window_size`` samples, none older than
	``latest.timestamp - window_size * sample_interval``.
	"""

	def __init__(self, window_size: int = 10, sample_interval_ms: float = 100.0) -> None:
		if window_size < 1:
			raise ValueError(f"window_size must be >= 1, got {window_size}")
		self.window_size = window_size
		self.sample_interval_ms = sample_interval_ms
		self._samples: deque[SensorSample] = deque(maxlen=window_size)

	@property
	def span_seconds(self) -> float:
		return self.window_size * self.sample_interval_ms / 1000.0

	def append(self, sample: SensorSample) -> None:
		if self._samples and sample.timestamp < self._samples[-1].timestamp:
			# Out-of-order reading; the window only moves forward.
			return
		self._samples.append(sample)
		self._evict(sample.timestamp)

	def _evict(self, now: float) -> None:
		cutoff = now - self.span_seconds
		while self._samples and self._samples[0].timestamp < cutoff:
			self._samples.popleft()

	def clear(self) -> None:
		self._samples.clear()

	def mean_vector(self) -> tuple[float, float, float]:
		"""Per-axis mean of the samples in the window."""
		if not self._samples:
			return 0.0, 0.0, 0.0
		arr = np.array([(s.x, s.y, s.z) for s in self._samples], dtype=np.float64)
		mean = arr.mean(axis=0)
		return float(mean[0]), float(mean[1]), float(mean[2])

	def mean_magnitude(self) -> float:
		"""Euclidean norm of the per-axis mean (rejects single-sample spikes)."""
		if not self._samples:
			return 0.0
		return float(np.linalg.norm(self.mean_vector()))

	def delta_magnitude(self) -> float:
		"""Norm of the change between the two most recent samples."""
		if len(self._samples) < 2:
			return 0.0
		a, b = self._samples[-2], self._samples[-1]
		return math.sqrt((b.x - a.x) ** 2 + (b.y - a.y) ** 2 + (b.z - a.z) ** 2)

	@property
	def latest(self) -> SensorSample | None:
		return self._samples[-1] if self._samples else None

	def __len__(self) -> int:
		return len(self._samples)

	def __iter__(self) -> Iterator[SensorSample]:
		return iter(self._samples)

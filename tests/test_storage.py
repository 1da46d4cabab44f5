"""Tests for sample recording (Parquet writer and reader)."""

from datetime import datetime

import pyarrow.parquet as pq
import pytest
from conftest import make_samples

from vigil.storage import RecordingReader, SampleRecorder, SessionMetadata
from vigil.storage.writer import SCHEMA_VERSION


@pytest.fixture
def sample_metadata() -> SessionMetadata:
	"""Sample session metadata."""
	return SessionMetadata(
		session_id="test_session_001",
		start_time=datetime(2026, 1, 1, 12, 0, 0),
		user_id=42,
		device="MockAccelerometer",
		sample_interval_ms=100,
	)


class TestSessionMetadata:
	def test_session_id_from_start_time(self):
		meta = SessionMetadata(start_time=datetime(2026, 2, 3, 4, 5, 6))
		assert meta.session_id == "20260203_040506"

	def test_parquet_metadata(self, sample_metadata):
		meta = sample_metadata.to_parquet_metadata()
		assert meta[b"schema_version"] == SCHEMA_VERSION.encode()
		assert meta[b"user_id"] == b"42"


class TestSampleRecorder:
	def test_write_and_close(self, tmp_dir, sample_metadata):
		path = tmp_dir / "samples.parquet"
		with SampleRecorder(path, sample_metadata, batch_size=4) as recorder:
			for sample in make_samples(1.0, 1000.0, 10):
				assert recorder.write_sample(sample)
		assert recorder.metrics.samples_written == 10
		assert recorder.metrics.write_errors == 0
		assert pq.read_metadata(path).num_rows == 10

	def test_flush_empty_buffer(self, tmp_dir):
		recorder = SampleRecorder(tmp_dir / "empty.parquet")
		assert recorder.flush()
		recorder.close()
		assert not (tmp_dir / "empty.parquet").exists()

	def test_creates_parent_dir(self, tmp_dir):
		path = tmp_dir / "nested" / "samples.parquet"
		with SampleRecorder(path) as recorder:
			recorder.write_sample(make_samples(1.0, 0.0, 1)[0])
		assert path.exists()

	def test_metrics_to_dict(self, tmp_dir):
		recorder = SampleRecorder(tmp_dir / "m.parquet")
		assert recorder.metrics.to_dict()["samples_written"] == 0
		recorder.close()


class TestRecordingReader:
	@pytest.fixture
	def recording(self, tmp_dir, sample_metadata):
		path = tmp_dir / "session.parquet"
		with SampleRecorder(path, sample_metadata) as recorder:
			for sample in make_samples(3.0, 1000.0, 5):
				recorder.write_sample(sample)
		return path

	def test_metadata(self, recording):
		meta = RecordingReader(recording).metadata
		assert meta["session_id"] == "test_session_001"
		assert meta["device"] == "MockAccelerometer"
		assert meta["num_rows"] == 5
		assert meta["format"] == "parquet"

	def test_dataframe(self, recording):
		df = RecordingReader(recording).get_dataframe()
		assert list(df.columns) == ["timestamp", "datetime", "x", "y", "z", "magnitude"]
		assert df["magnitude"].tolist() == pytest.approx([3.0] * 5)

	def test_iter_samples(self, recording):
		samples = list(RecordingReader(recording).iter_samples())
		assert [s.z for s in samples] == [3.0] * 5
		assert samples == make_samples(3.0, 1000.0, 5)

	def test_time_range(self, recording):
		start, end = RecordingReader(recording).get_time_range()
		assert start == 1000.0
		assert end == pytest.approx(1000.4)

	def test_missing_file(self, tmp_dir):
		with pytest.raises(FileNotFoundError):
			RecordingReader(tmp_dir / "nope.parquet")

	def test_unsupported_format(self, tmp_dir):
		path = tmp_dir / "data.csv"
		path.write_text("x")
		with pytest.raises(ValueError):
			RecordingReader(path)

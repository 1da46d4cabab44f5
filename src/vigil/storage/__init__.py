"""Persistent state and diagnostic recordings."""

from vigil.storage.reader import RecordingReader
from vigil.storage.state import StateStore
from vigil.storage.writer import SampleRecorder, SessionMetadata

__all__ = [
	"StateStore",
	"SampleRecorder",
	"SessionMetadata",
	"RecordingReader",
]

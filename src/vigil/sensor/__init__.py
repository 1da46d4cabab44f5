"""Motion and location sensing."""
from .accelerometer import Accelerometer, MotionSampler
from .location import AccuracyLevel, LocationProvider, LocationTracker
from .mock import MockAccelerometer, MockLocationProvider, MockMotionConfig, generate_samples
from .sample import SensorSample, SlidingWindow

__all__ = [
	"Accelerometer",
	"MotionSampler",
	"AccuracyLevel",
	"LocationProvider",
	"LocationTracker",
	"SensorSample",
	"SlidingWindow",
	# Mocks
	"MockAccelerometer",
	"MockLocationProvider",
	"MockMotionConfig",
	"generate_samples",
]

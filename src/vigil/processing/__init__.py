"""Detection algorithms over sensor data."""

from vigil.processing.fall_detection import (
	FallCandidate,
	FallDetectionConfig,
	FallDetectionResult,
	FallDetector,
	FallEvent,
	FallState,
)
from vigil.processing.inactivity import (
	DoNotDisturbWindow,
	InactivityCheck,
	InactivityMonitor,
	SuppressionWindow,
	is_movement,
)

__all__ = [
	# Fall detection
	"FallDetector",
	"FallDetectionConfig",
	"FallDetectionResult",
	"FallCandidate",
	"FallEvent",
	"FallState",
	# Inactivity
	"InactivityMonitor",
	"InactivityCheck",
	"DoNotDisturbWindow",
	"SuppressionWindow",
	"is_movement",
]

"""Personal safety monitoring: fall and inactivity detection, location tracking, alert delivery."""
__version__ = "0.1.0"

from vigil.delivery.dispatcher import DeliveryResult, DeliveryStatus, EventDispatcher
from vigil.errors import (
	BackgroundPermissionDenied,
	InvalidPayload,
	PermissionDenied,
	PreconditionError,
	SensorUnavailable,
	UserIdNotSet,
	VigilError,
)
from vigil.events import (
	ActivityEvent,
	EmergencyButtonPressed,
	EventType,
	FallDetected,
	InactivityAlert,
	LocationFix,
	LocationUpdate,
)
from vigil.monitor import MonitorStatus, SafetyMonitor, UiListener
from vigil.scheduler import BackgroundScheduler

__all__ = [
	"SafetyMonitor",
	"MonitorStatus",
	"UiListener",
	"BackgroundScheduler",
	"EventDispatcher",
	"DeliveryResult",
	"DeliveryStatus",
	"ActivityEvent",
	"EventType",
	"LocationFix",
	"LocationUpdate",
	"FallDetected",
	"InactivityAlert",
	"EmergencyButtonPressed",
	"VigilError",
	"PreconditionError",
	"UserIdNotSet",
	"SensorUnavailable",
	"PermissionDenied",
	"BackgroundPermissionDenied",
	"InvalidPayload",
]

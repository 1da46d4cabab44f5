"""Exception taxonomy for the safety monitor.

Precondition failures are fatal to the requested operation and are never
retried. Invalid payloads are terminal. Transient delivery failures never
surface as exceptions from the dispatcher; they are reported through
DeliveryResult instead.
"""
from __future__ import annotations


class VigilError(Exception):
	"""Base class for all monitor errors."""

	user_message = "An unexpected error occurred."

	def __init__(self, message: str | None = None) -> None:
		super().__init__(message or self.user_message)


class PreconditionError(VigilError):
	"""Operation cannot start because a required precondition is missing."""

	user_message = "The monitor is not ready."


class UserIdNotSet(PreconditionError):
	user_message = "No user is signed in. Sign in before starting monitoring."

	def __init__(self, message: str | None = None) -> None:
		super().__init__(message or "User ID not set. Call set_user_id first.")


class SensorUnavailable(PreconditionError):
	user_message = "This device has no accelerometer, so fall detection is unavailable."


class PermissionDenied(PreconditionError):
	"""A platform permission was refused.

	``scope`` identifies which permission: ``motion``, ``location-foreground``
	or ``location-background``.
	"""

	user_message = "Permission was denied."

	_MESSAGES = {
		"motion": "Motion sensor access was denied. Fall detection cannot run.",
		"location-foreground": "Location access was denied. Alerts cannot include your position.",
		"location-background": (
			"Background location access was denied. "
			"Alerts will only be sent while the app is open."
		),
	}

	def __init__(self, scope: str, message: str | None = None) -> None:
		self.scope = scope
		self.user_message = self._MESSAGES.get(scope, PermissionDenied.user_message)
		super().__init__(message or f"Permission denied: {scope}")


class BackgroundPermissionDenied(PermissionDenied):
	"""Foreground access granted but background access refused."""

	def __init__(self, message: str | None = None) -> None:
		super().__init__("location-background", message)


class InvalidPayload(VigilError):
	"""Event failed validation. Never retried, never queued."""

	user_message = "The alert contained invalid data and was not sent."


class DeliveryError(VigilError):
	"""Event could not be delivered after all retries."""

	user_message = "The alert could not be delivered."

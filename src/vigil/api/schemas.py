"""Pydantic schemas for API requests/responses."""
from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field


class SessionRequest(BaseModel):
	user_id: int = Field(gt=0)


class ConnectivityRequest(BaseModel):
	online: bool


class LocationRequest(BaseModel):
	latitude: float = Field(ge=-90.0, le=90.0)
	longitude: float = Field(ge=-180.0, le=180.0)
	accuracy: float | None = Field(default=5.0, ge=0.0)
	timestamp: float | None = None


class MonitorStatusResponse(BaseModel):
	tracking_active: bool
	fall_detection_active: bool
	location_active: bool
	motion_permission: bool | None = None
	location_foreground_permission: bool | None = None
	location_background_permission: bool | None = None
	user_id_set: bool
	online: bool
	queue_length: int
	detector_state: str
	last_movement_time: float | None = None
	last_fall: dict[str, Any] | None = None


class DeliveryResponse(BaseModel):
	status: str  # delivered, queued, failed
	attempts: int = 0
	status_code: int | None = None
	error: str | None = None


class QueueEntry(BaseModel):
	event_type: str
	url: str
	method: str = "POST"
	body: str
	enqueued_at: float


class QueueResponse(BaseModel):
	length: int
	entries: list[QueueEntry]


class FlushResponse(BaseModel):
	attempted: int = 0
	delivered: int = 0
	kept: int = 0
	dropped: int = 0
	skipped: bool = False
	remaining: int = 0


class UiNotification(BaseModel):
	"""Entry of the recent UI notification log."""
	type: str
	timestamp: float = Field(default_factory=time.time)
	payload: dict[str, Any]


class ErrorResponse(BaseModel):
	error: str
	detail: str
	scope: str | None = None

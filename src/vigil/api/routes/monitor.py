"""Monitor control API routes."""
from __future__ import annotations

import logging

from fastapi import APIRouter

from vigil.sensor.mock import is_mock_enabled

from ..schemas import (
	DeliveryResponse,
	LocationRequest,
	MonitorStatusResponse,
	SessionRequest,
	UiNotification,
)
from ..state import get_app_state

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["monitor"])


@router.get("/status", response_model=MonitorStatusResponse)
async def get_status():
	"""Flags shown by the UI."""
	state = get_app_state()
	return state.monitor.status().to_dict()


@router.post("/session", response_model=MonitorStatusResponse)
async def set_session(request: SessionRequest):
	"""Set the authenticated user id."""
	state = get_app_state()
	state.monitor.set_user_id(request.user_id)
	return state.monitor.status().to_dict()


@router.post("/tracking/start", response_model=MonitorStatusResponse)
async def start_tracking():
	state = get_app_state()
	await state.monitor.start_tracking()
	if is_mock_enabled():
		# Synthetic motion stream so the UI has something to show
		state.accelerometer.stream_async()
	return state.monitor.status().to_dict()


@router.post("/tracking/stop", response_model=MonitorStatusResponse)
async def stop_tracking():
	state = get_app_state()
	await state.monitor.stop_tracking()
	return state.monitor.status().to_dict()


@router.post("/emergency", response_model=DeliveryResponse)
async def press_emergency():
	"""Emergency button. Reports queued deliveries as success to the user."""
	state = get_app_state()
	result = await state.monitor.press_emergency_button()
	return result.to_dict()


@router.post("/location", response_model=MonitorStatusResponse)
async def inject_location(request: LocationRequest):
	"""Feed a position fix through the mock positioning service."""
	state = get_app_state()
	state.location_provider.emit_fix(
		request.latitude,
		request.longitude,
		accuracy=request.accuracy,
		timestamp=request.timestamp,
	)
	return state.monitor.status().to_dict()


@router.get("/notifications", response_model=list[UiNotification])
async def list_notifications(limit: int = 50):
	"""Most recent UI notifications, newest last."""
	state = get_app_state()
	entries = list(state.notifications.entries)
	return entries[-limit:] if limit > 0 else []

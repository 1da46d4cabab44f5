"""Offline queue and connectivity API routes."""
from __future__ import annotations

from fastapi import APIRouter

from ..schemas import ConnectivityRequest, FlushResponse, MonitorStatusResponse, QueueEntry, QueueResponse
from ..state import get_app_state

router = APIRouter(prefix="/api", tags=["delivery"])


@router.get("/queue", response_model=QueueResponse)
async def get_queue():
	state = get_app_state()
	entries = state.monitor.dispatcher.queue.entries()
	return QueueResponse(
		length=len(entries),
		entries=[
			QueueEntry(
				event_type=entry.event_type,
				url=entry.url,
				method=entry.method,
				body=entry.body,
				enqueued_at=entry.enqueued_at,
			)
			for entry in entries
		],
	)


@router.post("/queue/flush", response_model=FlushResponse)
async def flush_queue():
	"""Drain the offline queue now. Returns skipped=true if a drain is running."""
	state = get_app_state()
	result = await state.monitor.dispatcher.flush_offline_queue()
	return result.to_dict()


@router.post("/connectivity", response_model=MonitorStatusResponse)
async def set_connectivity(request: ConnectivityRequest):
	"""Network status report from the platform. Going online triggers a flush."""
	state = get_app_state()
	state.connectivity.set_online(request.online)
	return state.monitor.status().to_dict()

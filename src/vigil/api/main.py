"""FastAPI application for the monitor's local control surface."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vigil.config import get_config
from vigil.errors import InvalidPayload, PermissionDenied, PreconditionError, VigilError

from .routes import monitor, queue
from .state import get_app_state

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	"""Application lifespan handler."""
	logger.info("Starting vigil API")
	state = get_app_state()
	await state.scheduler.start()
	await state.monitor.resume_tracking()

	yield

	logger.info("Shutting down vigil API")
	await state.scheduler.stop()
	await state.monitor.close()


app = FastAPI(
	title="Vigil API",
	description="Local control surface for the personal safety monitor",
	version="0.1.0",
	lifespan=lifespan,
)

app.add_middleware(
	CORSMiddleware,
	allow_origins=get_config().api.cors_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

app.include_router(monitor.router)
app.include_router(queue.router)


@app.exception_handler(VigilError)
async def vigil_error_handler(request: Request, exc: VigilError):
	"""Map monitor errors to HTTP responses with a user-facing message."""
	if isinstance(exc, PermissionDenied):
		status_code = 403
	elif isinstance(exc, PreconditionError):
		status_code = 409
	elif isinstance(exc, InvalidPayload):
		status_code = 422
	else:
		status_code = 500
	return JSONResponse(
		status_code=status_code,
		content={
			"error": type(exc).__name__,
			"detail": exc.user_message,
			"scope": getattr(exc, "scope", None),
		},
	)


@app.get("/")
async def root():
	"""Root endpoint."""
	return {"status": "ok", "service": "vigil"}


@app.get("/health")
async def health():
	"""Health check endpoint."""
	state = get_app_state()
	status = state.monitor.status()
	return {
		"status": "healthy",
		"tracking": status.tracking_active,
		"online": status.online,
		"queue_length": status.queue_length,
	}

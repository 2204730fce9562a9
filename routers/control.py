"""Control panel routes. Routes: /status, /config, /model."""
from fastapi import APIRouter, Depends, HTTPException

from app_state import AppState
from deps import get_state
from posecam.config import ARCHITECTURES
from schemas.requests import DetectionConfigPayload, ModelPayload
from schemas.responses import ConfigResponse, ModelResponse

router = APIRouter(tags=["control"])


@router.get("/status")
async def status(state: AppState = Depends(get_state)):
	return {
		"ok": state.startup_error is None,
		"error": state.startup_error,
		"sampler": state.sampler.get_status() if state.sampler is not None else None,
		"source": state.source.get_status() if state.source is not None else None,
		"alerts_sent": dict(state.dispatcher.sent) if state.dispatcher is not None else None,
	}


@router.get("/config", response_model=ConfigResponse)
async def get_detection_config(state: AppState = Depends(get_state)):
	return {
		"detail": "ok",
		"config": state.store.snapshot().to_dict(),
		"pending_model": state.handle.pending if state.handle is not None else None,
	}


@router.post("/config", response_model=ConfigResponse)
async def update_detection_config(payload: DetectionConfigPayload, state: AppState = Depends(get_state)):
	"""Apply a partial update; the next frame sees the whole new snapshot."""
	try:
		new = state.store.update(payload.model_dump(exclude_none=True))
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	handle = state.handle
	# Compared with the running (or pending) architecture, not the previous snapshot.
	if handle is not None and new.input.architecture != (handle.pending or handle.architecture):
		handle.request_reload(new.input.architecture)
	return {
		"detail": "Config updated.",
		"config": new.to_dict(),
		"pending_model": state.handle.pending if state.handle is not None else None,
	}


@router.post("/model", response_model=ModelResponse)
async def change_model(payload: ModelPayload, state: AppState = Depends(get_state)):
	"""Request a model architecture swap; applied between frames."""
	arch = payload.architecture.strip().lower()
	if arch not in ARCHITECTURES:
		raise HTTPException(status_code=400, detail=f"architecture must be one of {list(ARCHITECTURES)}")
	if state.handle is None:
		raise HTTPException(status_code=503, detail=state.startup_error or "Pipeline not running")
	state.store.update({"input": {"architecture": arch}})
	state.handle.request_reload(arch)
	return {
		"detail": "Model change requested.",
		"architecture": arch,
		"current_model": state.handle.model.name(),
	}

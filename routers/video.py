"""Rendered output routes. Routes: /video/status, /video/mjpeg, /video/snapshot.jpg."""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response, StreamingResponse

from app_state import AppState
from deps import get_state
from posecam.stream import BOUNDARY, mjpeg_stream

router = APIRouter(tags=["video"])


@router.get("/video/status")
async def video_status(state: AppState = Depends(get_state)):
	src = state.source.get_status() if state.source is not None else None
	jpeg, t = state.output.get_latest_jpeg()
	return {
		"source": src,
		"has_jpeg": jpeg is not None,
		"t_last_jpeg": t,
		"published": state.output.count,
		"error": state.startup_error,
	}


@router.get("/video/mjpeg")
async def video_mjpeg(fps: float = 0.0, state: AppState = Depends(get_state)):
	"""Live MJPEG stream of the annotated frames."""
	if state.startup_error:
		raise HTTPException(status_code=503, detail=state.startup_error)
	max_fps = float(fps) if fps and fps > 0 else float(state.cfg.video.stream_fps)
	return StreamingResponse(
		mjpeg_stream(state.output, max_fps),
		media_type=f"multipart/x-mixed-replace; boundary={BOUNDARY}",
		headers={
			"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
			"Pragma": "no-cache",
			"Connection": "keep-alive",
		},
	)


@router.get("/video/snapshot.jpg")
async def video_snapshot(state: AppState = Depends(get_state)):
	"""Return a single latest annotated JPEG frame."""
	jpeg, _t = state.output.get_latest_jpeg()
	if jpeg is None:
		raise HTTPException(status_code=404, detail="No JPEG frame available yet")
	return Response(
		content=jpeg,
		media_type="image/jpeg",
		headers={
			"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
			"Pragma": "no-cache",
		},
	)

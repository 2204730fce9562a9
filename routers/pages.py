"""HTML page handlers. Route: / (live view with notifications)."""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse

from app_state import AppState
from deps import get_state

router = APIRouter(tags=["pages"])


def _get_html(state: AppState, filename: str) -> str:
	"""Load page HTML lazily. 404 if UI template missing."""
	if state.get_page_html is None:
		raise HTTPException(status_code=503, detail="Server not ready")
	try:
		return state.get_page_html(filename)
	except FileNotFoundError as e:
		raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/", response_class=HTMLResponse)
async def index(state: AppState = Depends(get_state)):
	"""Live annotated video; WebSocket notifications become desktop notifications."""
	return HTMLResponse(content=_get_html(state, "index.html"), headers={"Cache-Control": "no-store, no-cache, must-revalidate"})

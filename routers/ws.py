"""WebSocket endpoint and ConnectionManager. Route: /ws (hello, log lines and notifications)."""
import asyncio
import json
from typing import Any, Dict, List, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter(tags=["ws"])


class ConnectionManager:
	"""
	Tracks connected pages. Broadcasts are JSON text frames; a client whose
	send fails is dropped from the set right away.
	"""

	def __init__(self) -> None:
		self._clients: Set[WebSocket] = set()
		self._lock = asyncio.Lock()

	async def connect(self, websocket: WebSocket, hello: Dict[str, Any]) -> None:
		await websocket.accept()
		await websocket.send_text(json.dumps(hello, separators=(",", ":")))
		async with self._lock:
			self._clients.add(websocket)

	async def disconnect(self, websocket: WebSocket) -> None:
		async with self._lock:
			self._clients.discard(websocket)

	@property
	def client_count(self) -> int:
		return len(self._clients)

	async def broadcast_json(self, message: Dict[str, Any]) -> int:
		"""Send to every client; returns how many received it."""
		payload = json.dumps(message, separators=(",", ":"))
		async with self._lock:
			clients: List[WebSocket] = list(self._clients)
		if not clients:
			return 0
		results = await asyncio.gather(*(ws.send_text(payload) for ws in clients), return_exceptions=True)
		dead = [ws for ws, r in zip(clients, results) if isinstance(r, Exception)]
		if dead:
			async with self._lock:
				self._clients.difference_update(dead)
		return len(clients) - len(dead)


def _hello(state) -> Dict[str, Any]:
	handle = state.handle
	return {
		"type": "hello",
		"error": state.startup_error,
		"model": handle.model.name() if handle is not None else None,
	}


@router.websocket("/ws")
async def ws_endpoint(websocket: WebSocket):
	state = websocket.app.state.state
	manager: ConnectionManager = state.manager
	await manager.connect(websocket, _hello(state))
	try:
		while True:
			await websocket.receive_text()
	except WebSocketDisconnect:
		pass
	finally:
		await manager.disconnect(websocket)

"""
Explicit app state: single source of truth for the runtime lifecycle.
Created in create_app(), attached to app.state.state; injected into routes via Depends(get_state).
"""
from typing import Any, Callable, Optional

from posecam.config import AppConfig, ConfigStore
from posecam.stream import FrameBuffer


class AppState:
	"""
	Holds all runtime state for the app. Populated in server lifespan.
	"""
	# Config
	cfg: Optional[AppConfig] = None
	store: Optional[ConfigStore] = None

	# WebSocket manager (set at app creation)
	manager: Any = None

	# Pipeline (set in lifespan; stay None when startup failed)
	source: Any = None
	handle: Any = None
	processor: Any = None
	dispatcher: Any = None
	sampler: Any = None
	output: Optional[FrameBuffer] = None

	# Fatal startup error shown to the user (no camera, model unavailable)
	startup_error: Optional[str] = None

	# Helpers
	log_to_clients: Optional[Callable[[str], None]] = None
	get_page_html: Optional[Callable[[str], str]] = None

	def __init__(self) -> None:
		self.output = FrameBuffer()

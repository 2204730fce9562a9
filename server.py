import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app_state import AppState
from posecam.alerts import AlertDispatcher, AlertPolicy, LogNotifier, MultiNotifier, Notifier, WebSocketNotifier
from posecam.camera import CameraUnavailableError, VideoSource, get_video_source
from posecam.config import AppConfig, ConfigStore, get_config
from posecam.pose import PoseModel, make_loader
from posecam.processor import PoseProcessor
from posecam.render import FrameCanvas
from posecam.sampler import FrameSampler, ModelHandle
from routers import control, pages, video, ws

log = logging.getLogger("posecam.server")

NO_CAMERA_MESSAGE = "this device does not have a camera, or the camera could not be opened"

# UI directory path
UI_DIR = Path(__file__).parent / "posecam" / "UI"


def load_html_template(filename: str) -> str:
	"""
	Load an HTML template file from the UI directory.
	Raises FileNotFoundError if the file does not exist.
	"""
	file_path = UI_DIR / filename
	if not file_path.exists():
		raise FileNotFoundError(f"UI template not found: {file_path}")
	with open(file_path, "r", encoding="utf-8") as f:
		return f.read()


async def _startup(
	state: AppState,
	source: VideoSource,
	loader: Callable[[str], PoseModel],
	notifier: Notifier,
) -> None:
	"""
	Open the camera, load the model and start the sampler.
	A camera or model failure is fatal: it is reported once and the loop never starts.
	"""
	cfg = state.cfg
	state.source = source
	try:
		await asyncio.to_thread(source.start)
	except CameraUnavailableError as e:
		state.startup_error = f"{NO_CAMERA_MESSAGE}: {e}"
		log.error("camera unavailable: %s", e)
		return
	except Exception as e:
		state.startup_error = f"camera {source.name()} failed to start: {e!r}"
		log.error("camera start failed: %r", e)
		return

	arch = state.store.snapshot().input.architecture
	try:
		model = await asyncio.to_thread(loader, arch)
	except Exception as e:
		state.startup_error = f"pose model {arch!r} could not be loaded: {e}"
		log.error("model load failed: %r", e)
		return

	state.handle = ModelHandle(model, loader, logger=state.log_to_clients, architecture=arch, store=state.store)
	state.dispatcher = AlertDispatcher(
		notifier,
		AlertPolicy(cfg.alerts.cooldown_seconds),
		cfg.alerts,
	)
	state.processor = PoseProcessor(state.dispatcher, cfg.posture)
	state.sampler = FrameSampler(
		source,
		state.handle,
		state.store,
		state.processor,
		FrameCanvas(cfg.video.width, cfg.video.height),
		state.output,
		jpeg_quality=cfg.video.jpeg_quality,
		logger=state.log_to_clients,
	)
	state.sampler.start()
	log.info("pipeline started (camera=%s, model=%s)", source.name(), model.name())


async def _shutdown(state: AppState) -> None:
	in_use = False
	if state.sampler is not None:
		await state.sampler.stop()
		in_use = state.sampler.inference_in_flight
		state.sampler = None
	if in_use:
		# The worker thread still holds the model.
		log.warning("inference still running at shutdown; leaving model %s undisposed", state.handle.model.name())
		state.handle = None
	elif state.handle is not None:
		try:
			state.handle.dispose()
		except Exception as e:
			log.warning("model dispose failed: %r", e)
		state.handle = None
	if state.source is not None:
		state.source.stop()


def create_app(
	cfg: Optional[AppConfig] = None,
	*,
	source: Optional[VideoSource] = None,
	model_loader: Optional[Callable[[str], PoseModel]] = None,
	notifier: Optional[Notifier] = None,
) -> FastAPI:
	state = AppState()
	state.cfg = cfg or get_config()
	state.store = ConfigStore(state.cfg.detection)
	state.manager = ws.ConnectionManager()

	def _log_to_clients(message: str) -> None:
		"""
		Log a line and send it to all connected WebSocket clients.
		Fire-and-forget; safe to call from non-async code.
		"""
		log.info(message)
		try:
			asyncio.get_running_loop().create_task(state.manager.broadcast_json({"type": "log", "msg": message}))
		except RuntimeError:
			# No running loop yet; ignore
			pass

	state.log_to_clients = _log_to_clients
	state.get_page_html = load_html_template

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		await _startup(
			state,
			source or get_video_source(state.cfg),
			model_loader or make_loader(state.cfg.model.landmarker_path),
			notifier or MultiNotifier(WebSocketNotifier(state.manager), LogNotifier(log.info)),
		)
		try:
			yield
		finally:
			await _shutdown(state)

	app = FastAPI(title="posecam", lifespan=lifespan)
	app.state.state = state
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.include_router(pages.router)
	app.include_router(control.router)
	app.include_router(video.router)
	app.include_router(ws.router)
	return app


app = create_app()

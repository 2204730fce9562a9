from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from posecam.camera import VideoSource
from posecam.config import ConfigStore, DetectionConfig
from posecam.pose.base import PoseModel
from posecam.pose.types import Pose
from posecam.posture import PostureReading
from posecam.processor import PoseProcessor
from posecam.stream import FrameBuffer


@dataclass
class StepResult:
	poses: List[Pose] = field(default_factory=list)
	readings: List[PostureReading] = field(default_factory=list)
	error: Optional[str] = None
	skipped: bool = False


class ModelHandle:
	"""
	The loaded pose model plus an optional pending architecture swap.

	Swaps are only applied from the sampler between iterations, so the model is
	never replaced while an inference call is outstanding. If the replacement
	fails to load, the last good model stays installed and, when a store is
	attached, the store's architecture is put back to the running one.
	"""

	def __init__(
		self,
		model: PoseModel,
		loader: Callable[[str], PoseModel],
		logger: Optional[Callable[[str], None]] = None,
		*,
		architecture: Optional[str] = None,
		store: Optional[ConfigStore] = None,
	) -> None:
		self._model = model
		self._loader = loader
		self._pending: Optional[str] = None
		self.architecture = architecture
		self.store = store
		self.logger: Callable[[str], None] = logger or (lambda _msg: None)
		self.last_error: Optional[str] = None
		self.swaps = 0

	@property
	def model(self) -> PoseModel:
		return self._model

	@property
	def pending(self) -> Optional[str]:
		return self._pending

	def request_reload(self, architecture: str) -> None:
		# Latest request wins.
		self._pending = str(architecture)

	async def apply_pending(self) -> bool:
		arch = self._pending
		if arch is None:
			return False
		self._pending = None
		try:
			new_model = await asyncio.to_thread(self._loader, arch)
		except Exception as e:
			self.last_error = f"{arch}: {e!r}"
			self.logger(f"[Model] loading {arch!r} failed, keeping {self._model.name()}: {e!r}")
			self._revert_store(arch)
			return False

		old, self._model = self._model, new_model
		self.architecture = arch
		self.swaps += 1
		self.last_error = None
		try:
			old.dispose()
		except Exception as e:
			self.logger(f"[Model] dispose of {old.name()} failed: {e!r}")
		self.logger(f"[Model] switched to {new_model.name()}")
		return True

	def _revert_store(self, failed_arch: str) -> None:
		if self.store is None or self.architecture is None:
			return
		# A newer request (pending, or already in the store) takes precedence.
		if self._pending is not None:
			return
		if self.store.snapshot().input.architecture != failed_arch:
			return
		self.store.update({"input": {"architecture": self.architecture}})

	def dispose(self) -> None:
		self._model.dispose()


class FrameSampler:
	"""
	Continuous per-frame loop: swap model if requested, snapshot config, grab a
	frame, run one inference, render and classify, publish the JPEG.

	Each iteration awaits its inference and finishes rendering before the next
	begins, so at most one inference is ever in flight. A failed inference is
	logged and the loop moves on to the next frame.
	"""

	def __init__(
		self,
		source: VideoSource,
		handle: ModelHandle,
		store: ConfigStore,
		processor: PoseProcessor,
		canvas: Any,
		output: Optional[FrameBuffer] = None,
		*,
		jpeg_quality: int = 80,
		flip_horizontal: bool = True,
		idle_sleep_s: float = 0.05,
		stop_timeout_s: float = 5.0,
		logger: Optional[Callable[[str], None]] = None,
	) -> None:
		self.source = source
		self.handle = handle
		self.store = store
		self.processor = processor
		self.canvas = canvas
		self.output = output
		self.jpeg_quality = int(jpeg_quality)
		# Webcam frames are shown selfie-style.
		self.flip_horizontal = bool(flip_horizontal)
		self.idle_sleep_s = float(idle_sleep_s)
		self.stop_timeout_s = float(stop_timeout_s)
		self.logger: Callable[[str], None] = logger or (lambda _msg: None)

		self._stop = asyncio.Event()
		self._task: Optional[asyncio.Task] = None
		self._running = False
		self._frames = 0
		self._skipped = 0
		self._errors = 0
		self._last_error: Optional[str] = None
		self._last_frame_t: Optional[float] = None
		self._last_states: List[str] = []
		# Set by the worker thread itself; stays set after a cancelled await until the call returns.
		self._busy = threading.Event()

	def _call_model(self, fn, *args):
		self._busy.set()
		try:
			return fn(*args)
		finally:
			self._busy.clear()

	@property
	def inference_in_flight(self) -> bool:
		return self._busy.is_set()

	async def _infer(self, model: PoseModel, frame, config: DetectionConfig) -> List[Pose]:
		inp = config.input
		if config.algorithm == "multi-pose":
			m = config.multi
			poses = await asyncio.to_thread(
				self._call_model,
				model.estimate_multiple_poses,
				frame,
				float(inp.image_scale_factor),
				self.flip_horizontal,
				int(inp.output_stride),
				int(m.max_detections),
				float(m.min_part_confidence),
				float(m.nms_radius),
			)
			return list(poses)
		pose = await asyncio.to_thread(
			self._call_model,
			model.estimate_single_pose,
			frame,
			float(inp.image_scale_factor),
			self.flip_horizontal,
			int(inp.output_stride),
		)
		return [pose]

	async def step(self) -> StepResult:
		await self.handle.apply_pending()
		config = self.store.snapshot()

		frame = await asyncio.to_thread(self.source.read)
		if frame is None:
			self._skipped += 1
			return StepResult(skipped=True)

		try:
			poses = await self._infer(self.handle.model, frame, config)
		except Exception as e:
			self._errors += 1
			self._last_error = repr(e)
			self.logger(f"[Sampler] inference failed: {e!r}")
			return StepResult(error=repr(e))

		readings = self.processor.render_frame(frame, poses, config, self.canvas)
		if self.output is not None:
			self.output.publish(self.canvas.to_jpeg(self.jpeg_quality))
		self._frames += 1
		self._last_frame_t = time.time()
		self._last_states = [r.state.value for r in readings]
		return StepResult(poses=poses, readings=readings)

	async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
		stop = stop_event or self._stop
		self._running = True
		self.logger("[Sampler] started")
		try:
			while not stop.is_set():
				try:
					result = await self.step()
				except Exception as e:
					# Never let one bad frame end the loop.
					self._errors += 1
					self._last_error = repr(e)
					self.logger(f"[Sampler] iteration failed: {e!r}")
					result = StepResult(error=repr(e))
				if result.skipped or result.error:
					await asyncio.sleep(self.idle_sleep_s)
				else:
					await asyncio.sleep(0)
		finally:
			self._running = False
			self.logger("[Sampler] stopped")

	def start(self) -> asyncio.Task:
		if self._task is not None and not self._task.done():
			return self._task
		self._stop = asyncio.Event()
		self._task = asyncio.get_running_loop().create_task(self.run(self._stop), name="frame-sampler")
		return self._task

	async def stop(self, timeout: Optional[float] = None) -> bool:
		"""
		Signal the loop and wait for it. Returns False when the loop had to be
		cancelled; an inference may then still be running in its worker thread
		(see `inference_in_flight`).
		"""
		self._stop.set()
		task, self._task = self._task, None
		if task is None:
			return True
		timeout = self.stop_timeout_s if timeout is None else float(timeout)
		try:
			await asyncio.wait_for(task, timeout)
		except asyncio.TimeoutError:
			self.logger(f"[Sampler] did not stop within {timeout:.1f}s; cancelled")
			return False
		return True

	def is_running(self) -> bool:
		return bool(self._running)

	def get_status(self) -> Dict[str, Any]:
		return {
			"running": bool(self._running),
			"model": self.handle.model.name(),
			"pending_model": self.handle.pending,
			"model_error": self.handle.last_error,
			"frames": int(self._frames),
			"skipped_frames": int(self._skipped),
			"inference_errors": int(self._errors),
			"inference_in_flight": self.inference_in_flight,
			"last_error": self._last_error,
			"t_last_frame": self._last_frame_t,
			"posture": list(self._last_states),
		}

import asyncio

from conftest import FakeModel, FakeSource, RecordingCanvas, RecordingNotifier, upright_pose
from posecam.alerts import AlertDispatcher, AlertPolicy
from posecam.config import ConfigStore
from posecam.pose.base import ModelLoadError
from posecam.processor import PoseProcessor
from posecam.sampler import FrameSampler, ModelHandle
from posecam.stream import FrameBuffer


class RecordingProcessor(PoseProcessor):
	def __init__(self, events: list) -> None:
		super().__init__(AlertDispatcher(RecordingNotifier(), AlertPolicy(0.0)))
		self.events = events

	def render_frame(self, frame, poses, config, canvas):
		self.events.append(("render",))
		return super().render_frame(frame, poses, config, canvas)


class DisposeRecordingModel(FakeModel):
	def dispose(self) -> None:
		self.events.append(("dispose", self.label))
		super().dispose()


def make_sampler(model, *, loader=None, source=None, store=None, events=None, logger=None):
	events = events if events is not None else []
	handle = ModelHandle(model, loader or (lambda arch: FakeModel(arch)), logger=logger)
	return FrameSampler(
		source or FakeSource(),
		handle,
		store or ConfigStore(),
		RecordingProcessor(events),
		RecordingCanvas(),
		FrameBuffer(),
		idle_sleep_s=0.001,
		logger=logger,
	)


def test_step_renders_and_publishes():
	sampler = make_sampler(FakeModel(poses=[upright_pose()]))
	result = asyncio.run(sampler.step())
	assert result.error is None and not result.skipped
	assert [r.state.value for r in result.readings] == ["upright"]
	jpeg, t = sampler.output.get_latest_jpeg()
	assert jpeg.startswith(b"\xff\xd8")
	assert t is not None
	status = sampler.get_status()
	assert status["frames"] == 1
	assert status["posture"] == ["upright"]
	assert status["model"] == "fake:lite"


def test_missing_frame_is_skipped():
	model = FakeModel()
	sampler = make_sampler(model, source=FakeSource(frames=0))
	result = asyncio.run(sampler.step())
	assert result.skipped
	assert model.calls == 0
	assert sampler.output.count == 0
	assert sampler.get_status()["skipped_frames"] == 1


def test_at_most_one_inference_in_flight():
	events = []
	model = FakeModel(delay_s=0.01, events=events)
	sampler = make_sampler(model, events=events)

	async def scenario():
		sampler.start()
		await asyncio.sleep(0.25)
		await sampler.stop()

	asyncio.run(scenario())
	assert model.calls >= 3
	assert model.max_in_flight == 1
	kinds = [e[0] for e in events]
	# every inference starts, ends and is rendered before the next one starts
	for i in range(0, len(kinds) - 2, 3):
		assert kinds[i : i + 3] == ["infer_start", "infer_end", "render"]


def test_inference_failure_is_not_fatal():
	lines = []
	model = FakeModel(fail_on={1})
	sampler = make_sampler(model, logger=lines.append)

	async def scenario():
		first = await sampler.step()
		second = await sampler.step()
		return first, second

	first, second = asyncio.run(scenario())
	assert "inference 1 failed" in first.error
	assert second.error is None
	assert len(second.poses) == 1
	status = sampler.get_status()
	assert status["inference_errors"] == 1
	assert status["frames"] == 1
	assert any(line.startswith("[Sampler] inference failed") for line in lines)


def test_loop_survives_repeated_failures():
	model = FakeModel(fail_on={1, 2, 3})
	sampler = make_sampler(model)

	async def scenario():
		sampler.start()
		for _ in range(200):
			await asyncio.sleep(0.005)
			if sampler.get_status()["frames"] >= 2:
				break
		await sampler.stop()

	asyncio.run(scenario())
	status = sampler.get_status()
	assert status["inference_errors"] == 3
	assert status["frames"] >= 2
	assert not sampler.is_running()


def test_model_swap_disposes_old_model():
	old = FakeModel("lite")
	loaded = []

	def loader(arch):
		loaded.append(arch)
		return FakeModel(arch)

	sampler = make_sampler(old, loader=loader)
	sampler.handle.request_reload("full")
	sampler.handle.request_reload("heavy")
	asyncio.run(sampler.step())
	# latest request wins
	assert loaded == ["heavy"]
	assert old.disposed
	assert sampler.handle.model.name() == "fake:heavy"
	assert sampler.handle.pending is None
	assert sampler.handle.model.calls == 1


def test_failed_swap_keeps_last_good_model():
	old = FakeModel("lite")
	lines = []

	def loader(arch):
		raise ModelLoadError(f"cannot load {arch}")

	sampler = make_sampler(old, loader=loader, logger=lines.append)
	sampler.handle.request_reload("heavy")
	result = asyncio.run(sampler.step())
	assert result.error is None
	assert sampler.handle.model is old
	assert not old.disposed
	assert old.calls == 1
	assert sampler.handle.pending is None
	assert "cannot load heavy" in sampler.handle.last_error
	assert any("keeping fake:lite" in line for line in lines)


def test_swap_never_overlaps_inference():
	events = []
	old = DisposeRecordingModel("lite", delay_s=0.02, events=events)
	sampler = make_sampler(old, loader=lambda arch: FakeModel(arch, events=events), events=events)

	async def scenario():
		sampler.start()
		await asyncio.sleep(0.03)
		sampler.handle.request_reload("full")
		for _ in range(100):
			await asyncio.sleep(0.01)
			if sampler.handle.swaps:
				break
		await sampler.stop()

	asyncio.run(scenario())
	assert old.disposed
	i = events.index(("dispose", "lite"))
	started = sum(1 for e in events[:i] if e[0] == "infer_start")
	ended = sum(1 for e in events[:i] if e[0] == "infer_end")
	assert started == ended


def test_multi_pose_passes_detection_parameters():
	store = ConfigStore()
	store.update({"algorithm": "multi-pose", "multi": {"max_detections": 3, "nms_radius": 25}})
	model = FakeModel(poses=[upright_pose(), upright_pose(score=0.05)])
	sampler = make_sampler(model, store=store)
	result = asyncio.run(sampler.step())
	assert model.multi_calls == [(3, 0.3, 25.0)]
	assert len(result.poses) == 2
	# second pose is below min_pose_confidence
	assert len(result.readings) == 1


def test_config_change_applies_to_next_frame():
	store = ConfigStore()
	model = FakeModel()
	sampler = make_sampler(model, store=store)

	async def scenario():
		await sampler.step()
		store.update({"algorithm": "multi-pose"})
		await sampler.step()

	asyncio.run(scenario())
	assert model.calls == 2
	assert len(model.multi_calls) == 1


def test_stop_without_start():
	sampler = make_sampler(FakeModel())
	asyncio.run(sampler.stop())
	assert not sampler.is_running()


def test_start_is_idempotent():
	sampler = make_sampler(FakeModel())

	async def scenario():
		a = sampler.start()
		b = sampler.start()
		await asyncio.sleep(0.01)
		running = sampler.is_running()
		await sampler.stop()
		return a is b, running, a.done()

	same, running, done = asyncio.run(scenario())
	assert same and running and done


def test_failed_swap_puts_store_back_to_running_architecture():
	store = ConfigStore()

	def loader(arch):
		raise ModelLoadError(f"cannot load {arch}")

	handle = ModelHandle(FakeModel("lite"), loader, architecture="lite", store=store)
	store.update({"input": {"architecture": "heavy"}})
	handle.request_reload("heavy")
	assert asyncio.run(handle.apply_pending()) is False
	assert store.snapshot().input.architecture == "lite"
	assert handle.architecture == "lite"


def test_failed_swap_leaves_newer_choice_alone():
	store = ConfigStore()

	def loader(arch):
		# the user picks another architecture while this one is loading
		store.update({"input": {"architecture": "full"}})
		raise ModelLoadError(f"cannot load {arch}")

	handle = ModelHandle(FakeModel("lite"), loader, architecture="lite", store=store)
	store.update({"input": {"architecture": "heavy"}})
	handle.request_reload("heavy")
	asyncio.run(handle.apply_pending())
	assert store.snapshot().input.architecture == "full"


def test_successful_swap_tracks_architecture():
	handle = ModelHandle(FakeModel("lite"), lambda arch: FakeModel(arch), architecture="lite", store=ConfigStore())
	handle.request_reload("full")
	assert asyncio.run(handle.apply_pending()) is True
	assert handle.architecture == "full"


def test_stop_timeout_reports_inference_still_running():
	model = FakeModel(delay_s=0.3)
	sampler = make_sampler(model)

	async def scenario():
		sampler.start()
		for _ in range(100):
			await asyncio.sleep(0.005)
			if sampler.inference_in_flight:
				break
		clean = await sampler.stop(timeout=0.01)
		return clean, sampler.inference_in_flight

	clean, in_flight = asyncio.run(scenario())
	assert clean is False
	assert in_flight is True
	# asyncio.run waits for the worker thread before returning
	assert not sampler.inference_in_flight


def test_clean_stop_reports_nothing_in_flight():
	sampler = make_sampler(FakeModel())

	async def scenario():
		sampler.start()
		await asyncio.sleep(0.02)
		return await sampler.stop()

	assert asyncio.run(scenario()) is True
	assert not sampler.inference_in_flight

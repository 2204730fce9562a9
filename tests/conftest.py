from __future__ import annotations

import threading
import time
from typing import Dict, List, Optional, Tuple

import numpy as np
import pytest

from posecam.alerts import Notification, Notifier
from posecam.camera import CameraUnavailableError, VideoSource
from posecam.pose.base import PoseModel
from posecam.pose.types import COCO17_NAMES, Keypoint, Pose, make_pose


def build_pose(
	score: float = 0.9,
	nose: Tuple[float, float] = (255.0, 200.0),
	left_shoulder: Tuple[float, float] = (360.0, 300.0),
	right_shoulder: Tuple[float, float] = (150.0, 300.0),
	nose_score: float = 0.9,
	shoulder_score: float = 0.9,
	other_score: float = 0.9,
) -> Pose:
	"""
	Synthetic COCO-17 pose. Defaults: shoulder width 210, neck height 100,
	so the slouch ratio is 2.1.
	"""
	fixed: Dict[str, Tuple[Tuple[float, float], float]] = {
		"nose": (nose, nose_score),
		"left_shoulder": (left_shoulder, shoulder_score),
		"right_shoulder": (right_shoulder, shoulder_score),
	}
	kps: List[Keypoint] = []
	for i, name in enumerate(COCO17_NAMES):
		if name in fixed:
			(x, y), s = fixed[name]
		else:
			x, y, s = 100.0 + 15.0 * i, 320.0 + 8.0 * i, other_score
		kps.append(Keypoint(name=name, x_px=float(x), y_px=float(y), score=float(s)))
	return make_pose(kps, score=score)


def upright_pose(**kw) -> Pose:
	# Shoulder width 150, neck height 100 -> ratio 1.5
	kw.setdefault("left_shoulder", (325.0, 300.0))
	kw.setdefault("right_shoulder", (175.0, 300.0))
	return build_pose(**kw)


class RecordingCanvas:
	def __init__(self) -> None:
		self.ops: List[tuple] = []

	def clear(self) -> None:
		self.ops.append(("clear",))

	def draw_video(self, frame) -> None:
		self.ops.append(("video", tuple(np.asarray(frame).shape)))

	def draw_point(self, x: float, y: float) -> None:
		self.ops.append(("point", x, y))

	def draw_segment(self, a, b) -> None:
		self.ops.append(("segment", tuple(a), tuple(b)))

	def to_jpeg(self, quality: int = 80) -> bytes:
		return b"\xff\xd8" + repr(self.ops).encode("utf-8") + b"\xff\xd9"

	def of_kind(self, kind: str) -> List[tuple]:
		return [op for op in self.ops if op[0] == kind]


class RecordingNotifier(Notifier):
	def __init__(self) -> None:
		self.sent: List[Notification] = []

	def notify(self, notification: Notification) -> None:
		self.sent.append(notification)

	def kinds(self) -> List[str]:
		return [n.kind for n in self.sent]


class FakeModel(PoseModel):
	"""
	Pose model stand-in. Records call overlap so tests can assert that at most
	one inference is in flight.
	"""

	def __init__(
		self,
		label: str = "lite",
		poses: Optional[List[Pose]] = None,
		delay_s: float = 0.0,
		fail_on: Optional[set] = None,
		events: Optional[list] = None,
	) -> None:
		self.label = label
		self.poses = poses if poses is not None else [build_pose()]
		self.delay_s = float(delay_s)
		self.fail_on = set(fail_on or ())
		self.events = events if events is not None else []
		self.calls = 0
		self.multi_calls: List[tuple] = []
		self.in_flight = 0
		self.max_in_flight = 0
		self.disposed = False
		self._lock = threading.Lock()

	def name(self) -> str:
		return f"fake:{self.label}"

	def _enter(self) -> int:
		with self._lock:
			self.calls += 1
			n = self.calls
			self.in_flight += 1
			self.max_in_flight = max(self.max_in_flight, self.in_flight)
		self.events.append(("infer_start", n))
		return n

	def _exit(self, n: int) -> None:
		if self.delay_s:
			time.sleep(self.delay_s)
		with self._lock:
			self.in_flight -= 1
		self.events.append(("infer_end", n))
		if n in self.fail_on:
			raise RuntimeError(f"inference {n} failed")

	def estimate_single_pose(self, frame, image_scale_factor, flip_horizontal, output_stride) -> Pose:
		n = self._enter()
		self._exit(n)
		return self.poses[0]

	def estimate_multiple_poses(
		self, frame, image_scale_factor, flip_horizontal, output_stride, max_detections, score_threshold, nms_radius
	) -> List[Pose]:
		n = self._enter()
		self.multi_calls.append((max_detections, score_threshold, nms_radius))
		self._exit(n)
		return list(self.poses)

	def dispose(self) -> None:
		self.disposed = True


class FakeSource(VideoSource):
	def __init__(self, width: int = 500, height: int = 500, fail_start: bool = False, frames: Optional[int] = None) -> None:
		self.width = width
		self.height = height
		self.fail_start = fail_start
		self.remaining = frames
		self.started = False
		self.stopped = False
		self.reads = 0

	def name(self) -> str:
		return "fake"

	def start(self) -> None:
		if self.fail_start:
			raise CameraUnavailableError("no camera")
		self.started = True

	def stop(self) -> None:
		self.stopped = True

	def read(self):
		self.reads += 1
		if self.remaining is not None:
			if self.remaining <= 0:
				return None
			self.remaining -= 1
		return np.zeros((self.height, self.width, 3), dtype=np.uint8)

	def get_status(self):
		return {"backend": "fake", "running": self.started and not self.stopped, "frames": self.reads}


@pytest.fixture
def slouched_pose() -> Pose:
	return build_pose()


@pytest.fixture
def notifier() -> RecordingNotifier:
	return RecordingNotifier()

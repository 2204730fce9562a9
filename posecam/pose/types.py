from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple


COCO17_NAMES = [
	"nose",
	"left_eye",
	"right_eye",
	"left_ear",
	"right_ear",
	"left_shoulder",
	"right_shoulder",
	"left_elbow",
	"right_elbow",
	"left_wrist",
	"right_wrist",
	"left_hip",
	"right_hip",
	"left_knee",
	"right_knee",
	"left_ankle",
	"right_ankle",
]

# Skeleton segments drawn between anatomically adjacent keypoints.
ADJACENT_PAIRS: Tuple[Tuple[str, str], ...] = (
	("left_hip", "left_shoulder"),
	("left_elbow", "left_shoulder"),
	("left_elbow", "left_wrist"),
	("left_hip", "left_knee"),
	("left_knee", "left_ankle"),
	("right_hip", "right_shoulder"),
	("right_elbow", "right_shoulder"),
	("right_elbow", "right_wrist"),
	("right_hip", "right_knee"),
	("right_knee", "right_ankle"),
	("left_shoulder", "right_shoulder"),
	("left_hip", "right_hip"),
)


@dataclass(frozen=True)
class Keypoint:
	"""
	A single 2D keypoint in pixel coordinates.
	"""

	name: str
	x_px: float
	y_px: float
	score: float  # confidence/visibility [0..1]


@dataclass(frozen=True)
class Pose:
	"""
	One detected person for a single frame.

	- Keypoints are keyed by anatomical name (COCO-17), in COCO order.
	- `score` is the aggregate pose confidence.
	"""

	score: float
	keypoints: Dict[str, Keypoint] = field(default_factory=dict)

	def get(self, name: str) -> Optional[Keypoint]:
		if not self.keypoints:
			return None
		return self.keypoints.get(name)

	def __iter__(self):
		return iter(self.keypoints.values())


def pose_score(keypoints: Iterable[Keypoint]) -> float:
	"""Mean keypoint score; 0.0 for an empty pose."""
	scores = [float(k.score) for k in keypoints]
	if not scores:
		return 0.0
	return sum(scores) / float(len(scores))


def make_pose(keypoints: Iterable[Keypoint], score: Optional[float] = None) -> Pose:
	"""Build a Pose keyed by name, ordered as COCO-17 (unknown names last)."""
	by_name = {k.name: k for k in keypoints}
	ordered: Dict[str, Keypoint] = {}
	for name in COCO17_NAMES:
		if name in by_name:
			ordered[name] = by_name.pop(name)
	ordered.update(by_name)
	if score is None:
		score = pose_score(ordered.values())
	return Pose(score=float(score), keypoints=ordered)

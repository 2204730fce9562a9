from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Optional

from posecam.pose.types import Pose


VISIBILITY_LANDMARKS = ("nose", "left_shoulder", "right_shoulder")


class PostureState(str, enum.Enum):
	UPRIGHT = "upright"
	SLOUCHING = "slouching"
	UNCERTAIN = "uncertain"


@dataclass(frozen=True)
class PostureReading:
	state: PostureState
	ratio: Optional[float] = None


def slouch_ratio(pose: Pose) -> Optional[float]:
	"""
	Shoulder width divided by neck height (image y grows downwards).

	As the head sinks towards the shoulder line the neck height shrinks and the
	ratio grows. With the nose at or below the shoulder line the ratio is inf.
	Returns None when a landmark is missing.
	"""
	nose = pose.get("nose")
	ls = pose.get("left_shoulder")
	rs = pose.get("right_shoulder")
	if nose is None or ls is None or rs is None:
		return None
	width = abs(float(ls.x_px) - float(rs.x_px))
	neck = (float(ls.y_px) + float(rs.y_px)) / 2.0 - float(nose.y_px)
	if neck <= 0.0:
		return math.inf
	return width / neck


def landmarks_visible(pose: Pose, min_confidence: float = 0.5) -> bool:
	for name in VISIBILITY_LANDMARKS:
		kp = pose.get(name)
		if kp is None or float(kp.score) < min_confidence:
			return False
	return True


def classify_posture(
	pose: Pose,
	min_landmark_confidence: float = 0.5,
	threshold: float = 1.95,
) -> PostureReading:
	if not landmarks_visible(pose, min_landmark_confidence):
		return PostureReading(PostureState.UNCERTAIN)
	ratio = slouch_ratio(pose)
	if ratio is None:
		return PostureReading(PostureState.UNCERTAIN)
	if ratio > threshold:
		return PostureReading(PostureState.SLOUCHING, ratio)
	return PostureReading(PostureState.UPRIGHT, ratio)

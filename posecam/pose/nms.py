from __future__ import annotations

import math
from typing import List

from posecam.pose.types import Pose


def _within_radius(candidate: Pose, kept: Pose, nms_radius: float, score_threshold: float) -> bool:
	r2 = float(nms_radius) ** 2
	for kp in candidate:
		if float(kp.score) < score_threshold:
			continue
		other = kept.get(kp.name)
		if other is None or float(other.score) < score_threshold:
			continue
		dx = float(kp.x_px) - float(other.x_px)
		dy = float(kp.y_px) - float(other.y_px)
		if dx * dx + dy * dy <= r2:
			return True
	return False


def suppress_overlapping(
	poses: List[Pose],
	nms_radius: float,
	max_detections: int,
	score_threshold: float = 0.0,
) -> List[Pose]:
	"""
	Greedy non-max suppression over whole poses.

	Poses are visited by descending score; a pose is dropped when any of its
	confident keypoints sits within `nms_radius` pixels of the same keypoint of an
	already kept pose. At most `max_detections` poses are returned.
	"""
	limit = max(0, int(max_detections))
	if limit == 0 or not poses:
		return []
	radius = float(nms_radius)
	if not math.isfinite(radius) or radius < 0.0:
		radius = 0.0

	kept: List[Pose] = []
	for pose in sorted(poses, key=lambda p: float(p.score), reverse=True):
		if any(_within_radius(pose, k, radius, score_threshold) for k in kept):
			continue
		kept.append(pose)
		if len(kept) >= limit:
			break
	return kept

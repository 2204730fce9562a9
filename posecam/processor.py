from __future__ import annotations

from typing import List, Optional

from posecam.alerts import AlertDispatcher
from posecam.config import DetectionConfig, PostureConfig
from posecam.pose.types import Pose
from posecam.posture import PostureReading, classify_posture
from posecam.render import Canvas, draw_keypoints, draw_skeleton


class PoseProcessor:
	"""
	Per-pose classifier and renderer.

	Holds no per-frame state of its own: drawing is a pure function of
	(pose, config). Alert debouncing lives in the dispatcher's policy.
	"""

	def __init__(self, dispatcher: AlertDispatcher, posture_cfg: Optional[PostureConfig] = None) -> None:
		self.dispatcher = dispatcher
		self.posture_cfg = posture_cfg or PostureConfig()

	def process_pose(self, pose: Pose, config: DetectionConfig, canvas: Canvas) -> Optional[PostureReading]:
		min_pose, min_part = config.thresholds()
		if float(pose.score) < min_pose:
			return None

		reading: Optional[PostureReading] = None
		if config.output.show_points:
			reading = classify_posture(
				pose,
				min_landmark_confidence=self.posture_cfg.min_landmark_confidence,
				threshold=self.posture_cfg.slouch_threshold,
			)
			self.dispatcher.on_reading(reading)
			draw_keypoints(pose, min_part, canvas)
		if config.output.show_skeleton:
			draw_skeleton(pose, min_part, canvas)
		return reading

	def render_frame(self, frame, poses: List[Pose], config: DetectionConfig, canvas: Canvas) -> List[PostureReading]:
		canvas.clear()
		if config.output.show_video and frame is not None:
			canvas.draw_video(frame)
		readings: List[PostureReading] = []
		for pose in poses:
			reading = self.process_pose(pose, config, canvas)
			if reading is not None:
				readings.append(reading)
		return readings

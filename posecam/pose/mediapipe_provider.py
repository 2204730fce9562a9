from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import numpy as np
from PIL import Image

from posecam.pose.base import ModelLoadError, PoseModel
from posecam.pose.nms import suppress_overlapping
from posecam.pose.types import COCO17_NAMES, Keypoint, Pose, make_pose


log = logging.getLogger(__name__)

# Architecture name -> MediaPipe model_complexity
MODEL_COMPLEXITY: Dict[str, int] = {
	"lite": 0,
	"full": 1,
	"heavy": 2,
}

# COCO-17 name -> MediaPipe PoseLandmark index (same for solutions and tasks APIs)
MP_LANDMARK_INDEX: Dict[str, int] = {
	"nose": 0,
	"left_eye": 2,
	"right_eye": 5,
	"left_ear": 7,
	"right_ear": 8,
	"left_shoulder": 11,
	"right_shoulder": 12,
	"left_elbow": 13,
	"right_elbow": 14,
	"left_wrist": 15,
	"right_wrist": 16,
	"left_hip": 23,
	"right_hip": 24,
	"left_knee": 25,
	"right_knee": 26,
	"left_ankle": 27,
	"right_ankle": 28,
}


def prepare_frame(frame, image_scale_factor: float, flip_horizontal: bool) -> np.ndarray:
	"""
	Mirror (optionally) and downscale an RGB frame before inference.
	Landmarks come back normalized, so the scale does not leak into pixel coords.
	"""
	arr = np.asarray(frame)
	if flip_horizontal:
		arr = arr[:, ::-1]
	scale = float(image_scale_factor)
	if 0.0 < scale < 1.0:
		h, w = int(arr.shape[0]), int(arr.shape[1])
		size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
		arr = np.asarray(Image.fromarray(np.ascontiguousarray(arr)).resize(size, Image.Resampling.BILINEAR))
	return np.ascontiguousarray(arr, dtype=np.uint8)


def landmarks_to_pose(landmarks, width: int, height: int) -> Pose:
	keypoints: List[Keypoint] = []
	for name in COCO17_NAMES:
		idx = MP_LANDMARK_INDEX[name]
		try:
			p = landmarks[idx]
		except (IndexError, KeyError):
			continue
		keypoints.append(
			Keypoint(
				name=name,
				x_px=float(p.x) * float(width),
				y_px=float(p.y) * float(height),
				score=float(getattr(p, "visibility", 0.0) or 0.0),
			)
		)
	return make_pose(keypoints)


class MediaPipePoseModel(PoseModel):
	"""
	MediaPipe Pose model that outputs the COCO-17 keypoint set.

	Notes:
	- MediaPipe uses normalized coordinates; we convert to pixel space of the input frame.
	- `visibility` is used as keypoint score, the pose score is the mean keypoint score.
	- `output_stride` has no MediaPipe counterpart and is ignored.
	- Multi-pose needs a PoseLandmarker `.task` file; without one the single-pose
	  result is returned as a one-element list.
	"""

	def __init__(
		self,
		architecture: str = "lite",
		landmarker_path: str = "",
		min_detection_confidence: float = 0.5,
		min_tracking_confidence: float = 0.5,
	) -> None:
		arch = str(architecture).strip().lower()
		if arch not in MODEL_COMPLEXITY:
			raise ModelLoadError(f"unknown architecture {architecture!r} (expected one of {sorted(MODEL_COMPLEXITY)})")
		try:
			import mediapipe as mp  # type: ignore
		except ImportError as e:
			raise ModelLoadError("MediaPipe is not installed. Install with: pip install mediapipe") from e

		self._mp = mp
		self._architecture = arch
		self._landmarker_path = str(landmarker_path or "")
		self._landmarker: Any = None
		self._landmarker_poses: Optional[int] = None
		self._pose = mp.solutions.pose.Pose(
			static_image_mode=False,
			model_complexity=MODEL_COMPLEXITY[arch],
			enable_segmentation=False,
			smooth_landmarks=True,
			min_detection_confidence=float(min_detection_confidence),
			min_tracking_confidence=float(min_tracking_confidence),
		)

	@property
	def architecture(self) -> str:
		return self._architecture

	def name(self) -> str:
		return f"mediapipe_pose:{self._architecture}"

	def estimate_single_pose(
		self,
		frame,
		image_scale_factor: float,
		flip_horizontal: bool,
		output_stride: int,
	) -> Pose:
		h, w = int(frame.shape[0]), int(frame.shape[1])
		rgb = prepare_frame(frame, image_scale_factor, flip_horizontal)
		res = self._pose.process(rgb)
		if not res or not getattr(res, "pose_landmarks", None):
			return Pose(score=0.0)
		return landmarks_to_pose(res.pose_landmarks.landmark, w, h)

	def estimate_multiple_poses(
		self,
		frame,
		image_scale_factor: float,
		flip_horizontal: bool,
		output_stride: int,
		max_detections: int,
		score_threshold: float,
		nms_radius: float,
	) -> List[Pose]:
		if not self._landmarker_path:
			pose = self.estimate_single_pose(frame, image_scale_factor, flip_horizontal, output_stride)
			return [pose] if pose.keypoints else []

		h, w = int(frame.shape[0]), int(frame.shape[1])
		rgb = prepare_frame(frame, image_scale_factor, flip_horizontal)
		landmarker = self._get_landmarker(int(max_detections))
		res = landmarker.detect(self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb))
		poses = [landmarks_to_pose(lms, w, h) for lms in (res.pose_landmarks or [])]
		return suppress_overlapping(poses, nms_radius, max_detections, score_threshold)

	def _get_landmarker(self, num_poses: int):
		num_poses = max(1, int(num_poses))
		if self._landmarker is not None and self._landmarker_poses == num_poses:
			return self._landmarker
		from mediapipe.tasks import python as mp_tasks  # type: ignore
		from mediapipe.tasks.python import vision  # type: ignore

		if self._landmarker is not None:
			self._landmarker.close()
		options = vision.PoseLandmarkerOptions(
			base_options=mp_tasks.BaseOptions(model_asset_path=self._landmarker_path),
			running_mode=vision.RunningMode.IMAGE,
			num_poses=num_poses,
		)
		log.debug("creating PoseLandmarker from %s (num_poses=%d)", self._landmarker_path, num_poses)
		self._landmarker = vision.PoseLandmarker.create_from_options(options)
		self._landmarker_poses = num_poses
		return self._landmarker

	def dispose(self) -> None:
		if self._pose is not None:
			self._pose.close()
			self._pose = None
		if self._landmarker is not None:
			self._landmarker.close()
			self._landmarker = None

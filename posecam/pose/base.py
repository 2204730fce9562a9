from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from posecam.pose.types import Pose


class ModelLoadError(RuntimeError):
	"""Raised when a pose model cannot be built (unknown architecture, missing backend)."""


class PoseModel(ABC):
	"""
	Model adapter interface.

	Implementations take an RGB image (H,W,3 uint8) and return poses in the pixel
	space of that image (mirrored when flip_horizontal is set). Inference is
	blocking; callers on the event loop should run it in a worker thread.
	"""

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def estimate_single_pose(
		self,
		frame,
		image_scale_factor: float,
		flip_horizontal: bool,
		output_stride: int,
	) -> Pose: ...

	@abstractmethod
	def estimate_multiple_poses(
		self,
		frame,
		image_scale_factor: float,
		flip_horizontal: bool,
		output_stride: int,
		max_detections: int,
		score_threshold: float,
		nms_radius: float,
	) -> List[Pose]: ...

	@abstractmethod
	def dispose(self) -> None: ...

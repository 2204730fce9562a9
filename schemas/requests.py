"""Pydantic request body models for the control endpoints."""
from typing import Optional

from pydantic import BaseModel, Field


class InputPayload(BaseModel):
	architecture: Optional[str] = Field(None, description="Model architecture: lite, full or heavy")
	output_stride: Optional[int] = Field(None, description="Output stride: 8, 16 or 32")
	image_scale_factor: Optional[float] = Field(None, description="Downscale before inference, 0.2-1.0")


class SinglePosePayload(BaseModel):
	min_pose_confidence: Optional[float] = None
	min_part_confidence: Optional[float] = None


class MultiPosePayload(BaseModel):
	max_detections: Optional[int] = None
	min_pose_confidence: Optional[float] = None
	min_part_confidence: Optional[float] = None
	nms_radius: Optional[float] = None


class OutputPayload(BaseModel):
	show_video: Optional[bool] = None
	show_skeleton: Optional[bool] = None
	show_points: Optional[bool] = None


class DetectionConfigPayload(BaseModel):
	"""Request body for POST /config. Omitted fields keep their current value."""

	algorithm: Optional[str] = Field(None, description="'single-pose' or 'multi-pose'")
	input: Optional[InputPayload] = None
	single: Optional[SinglePosePayload] = None
	multi: Optional[MultiPosePayload] = None
	output: Optional[OutputPayload] = None


class ModelPayload(BaseModel):
	"""Request body for POST /model. Swap the pose model between frames."""

	architecture: str = Field(..., description="Model architecture: lite, full or heavy")

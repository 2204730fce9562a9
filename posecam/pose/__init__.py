"""
Pose estimation utilities.

This package defines a model-agnostic Pose/Keypoint interface and model adapters
(MediaPipe Pose) so the sampler can swap architectures at runtime.
"""

from __future__ import annotations

from typing import Optional

from posecam.pose.base import ModelLoadError, PoseModel


def load_model(architecture: str, landmarker_path: str = "") -> PoseModel:
	"""
	Build a pose model for the given architecture.
	Raises ModelLoadError when the architecture is unknown or the backend is unavailable.
	"""
	from posecam.pose.mediapipe_provider import MediaPipePoseModel

	try:
		return MediaPipePoseModel(architecture=architecture, landmarker_path=landmarker_path)
	except ModelLoadError:
		raise
	except Exception as e:
		raise ModelLoadError(f"failed to load {architecture!r} model: {e!r}") from e


def make_loader(landmarker_path: Optional[str] = None):
	"""Return a one-argument loader(architecture) bound to the configured landmarker file."""

	def _load(architecture: str) -> PoseModel:
		return load_model(architecture, landmarker_path=landmarker_path or "")

	return _load


__all__ = ["ModelLoadError", "PoseModel", "load_model", "make_loader"]

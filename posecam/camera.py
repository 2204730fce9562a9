from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import numpy as np

from posecam.config import AppConfig, get_config


class CameraUnavailableError(RuntimeError):
	"""No camera, or the capture backend cannot open it. Fatal at startup."""


class VideoSource(ABC):
	"""
	Supplies the current RGB frame on demand, at a fixed width/height.
	"""

	width: int
	height: int

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def start(self) -> None: ...

	@abstractmethod
	def stop(self) -> None: ...

	@abstractmethod
	def read(self) -> Optional[np.ndarray]: ...

	@abstractmethod
	def get_status(self) -> Dict[str, Any]: ...


class OpenCvCamera(VideoSource):
	"""
	Webcam capture through OpenCV.

	Frames are returned as RGB uint8 arrays resized to (height, width) so that
	keypoint coordinates line up with the output canvas.
	"""

	def __init__(self, index: int = 0, width: int = 500, height: int = 500) -> None:
		self.index = int(index)
		self.width = int(width)
		self.height = int(height)
		self._lock = threading.Lock()
		self._cap: Any = None
		self._frames = 0
		self._last_error: Optional[str] = None

	def name(self) -> str:
		return f"opencv:{self.index}"

	def start(self) -> None:
		try:
			import cv2  # type: ignore
		except ImportError as e:
			raise CameraUnavailableError("OpenCV is not installed. Install with: pip install opencv-python") from e

		with self._lock:
			if self._cap is not None:
				return
			cap = cv2.VideoCapture(self.index)
			if not cap.isOpened():
				cap.release()
				self._last_error = f"could not open camera index {self.index}"
				raise CameraUnavailableError(self._last_error)
			cap.set(cv2.CAP_PROP_FRAME_WIDTH, float(self.width))
			cap.set(cv2.CAP_PROP_FRAME_HEIGHT, float(self.height))
			self._cap = cap
			self._last_error = None

	def stop(self) -> None:
		with self._lock:
			if self._cap is not None:
				self._cap.release()
				self._cap = None

	def read(self) -> Optional[np.ndarray]:
		import cv2  # type: ignore

		with self._lock:
			if self._cap is None:
				return None
			ok, img = self._cap.read()
			if not ok or img is None:
				self._last_error = "frame grab failed"
				return None
			self._frames += 1
		h, w = img.shape[:2]
		if (w, h) != (self.width, self.height):
			img = cv2.resize(img, (self.width, self.height))
		return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

	def get_status(self) -> Dict[str, Any]:
		with self._lock:
			return {
				"backend": self.name(),
				"running": self._cap is not None,
				"frames": int(self._frames),
				"size": [self.width, self.height],
				"error": self._last_error,
			}


def get_video_source(cfg: Optional[AppConfig] = None) -> VideoSource:
	cfg = cfg or get_config()
	# NOTE: do not use `or 0` style defaults on the index; 0 is the usual webcam.
	return OpenCvCamera(
		index=int(cfg.video.camera_index),
		width=int(cfg.video.width),
		height=int(cfg.video.height),
	)

from __future__ import annotations

from io import BytesIO
from typing import Protocol, Tuple

import numpy as np
from PIL import Image, ImageDraw

from posecam.pose.types import ADJACENT_PAIRS, Pose


COLOR = (0, 255, 255)  # aqua
POINT_RADIUS = 3
LINE_WIDTH = 2

Point = Tuple[float, float]


class Canvas(Protocol):
	def clear(self) -> None: ...

	def draw_video(self, frame) -> None: ...

	def draw_point(self, x: float, y: float) -> None: ...

	def draw_segment(self, a: Point, b: Point) -> None: ...


class FrameCanvas:
	"""
	Pillow-backed output canvas of a fixed size.

	The video layer is drawn mirrored (selfie view); keypoints coming from a
	flip_horizontal inference are already in mirrored coordinates.
	"""

	def __init__(self, width: int, height: int) -> None:
		self.width = int(width)
		self.height = int(height)
		self._image = Image.new("RGB", (self.width, self.height))
		self._draw = ImageDraw.Draw(self._image)

	@property
	def image(self) -> Image.Image:
		return self._image

	def clear(self) -> None:
		self._draw.rectangle((0, 0, self.width, self.height), fill=(0, 0, 0))

	def draw_video(self, frame) -> None:
		im = Image.fromarray(np.ascontiguousarray(np.asarray(frame, dtype=np.uint8)))
		im = im.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
		if im.size != (self.width, self.height):
			im = im.resize((self.width, self.height), Image.Resampling.BILINEAR)
		self._image.paste(im, (0, 0))

	def draw_point(self, x: float, y: float) -> None:
		r = POINT_RADIUS
		self._draw.ellipse((x - r, y - r, x + r, y + r), fill=COLOR)

	def draw_segment(self, a: Point, b: Point) -> None:
		self._draw.line((a[0], a[1], b[0], b[1]), fill=COLOR, width=LINE_WIDTH)

	def to_jpeg(self, quality: int = 80) -> bytes:
		buf = BytesIO()
		self._image.save(buf, format="JPEG", quality=int(quality), optimize=True)
		return buf.getvalue()


def draw_keypoints(pose: Pose, min_confidence: float, canvas: Canvas) -> int:
	n = 0
	for kp in pose:
		if float(kp.score) < min_confidence:
			continue
		canvas.draw_point(float(kp.x_px), float(kp.y_px))
		n += 1
	return n


def draw_skeleton(pose: Pose, min_confidence: float, canvas: Canvas) -> int:
	n = 0
	for a_name, b_name in ADJACENT_PAIRS:
		a = pose.get(a_name)
		b = pose.get(b_name)
		if a is None or b is None:
			continue
		if float(a.score) < min_confidence or float(b.score) < min_confidence:
			continue
		canvas.draw_segment((float(a.x_px), float(a.y_px)), (float(b.x_px), float(b.y_px)))
		n += 1
	return n

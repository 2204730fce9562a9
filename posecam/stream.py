from __future__ import annotations

import asyncio
import threading
import time
from typing import AsyncIterator, Optional, Tuple


BOUNDARY = "frame"


class FrameBuffer:
	"""
	Thread-safe "latest rendered JPEG" slot read by the MJPEG stream and snapshot route.
	Every publish bumps `count`, which readers use to tell frames apart.
	"""

	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._jpeg: Optional[bytes] = None
		self._t: Optional[float] = None
		self._count = 0

	def publish(self, jpeg: bytes, t: Optional[float] = None) -> None:
		with self._lock:
			self._jpeg = bytes(jpeg)
			self._t = float(t) if t is not None else time.time()
			self._count += 1

	def get_latest_jpeg(self) -> Tuple[Optional[bytes], Optional[float]]:
		with self._lock:
			return self._jpeg, self._t

	def get_latest(self) -> Tuple[Optional[bytes], int]:
		with self._lock:
			return self._jpeg, self._count

	@property
	def count(self) -> int:
		with self._lock:
			return self._count


def mjpeg_part(jpeg: bytes) -> bytes:
	"""One multipart/x-mixed-replace part: boundary, headers and the JPEG body."""
	head = (
		f"--{BOUNDARY}\r\n"
		"Content-Type: image/jpeg\r\n"
		f"Content-Length: {len(jpeg)}\r\n\r\n"
	).encode("ascii")
	return head + jpeg + b"\r\n"


async def mjpeg_stream(buffer: FrameBuffer, fps: float, poll_s: float = 0.02) -> AsyncIterator[bytes]:
	"""
	Yield each newly published frame as a multipart part, at most `fps` per second.
	Frames published faster than that are skipped; only the latest is sent.
	"""
	max_fps = float(fps) if fps and fps > 0 else 15.0
	min_interval = 1.0 / max_fps
	sent_count = 0
	next_due = 0.0
	while True:
		wait = next_due - time.monotonic()
		if wait > 0:
			await asyncio.sleep(wait)
		jpeg, count = buffer.get_latest()
		if jpeg is None or count == sent_count:
			await asyncio.sleep(poll_s)
			continue
		sent_count = count
		next_due = time.monotonic() + min_interval
		yield mjpeg_part(jpeg)

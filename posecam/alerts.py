from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from posecam.config import AlertConfig
from posecam.posture import PostureReading, PostureState


SLOUCH = "slouch"
VISIBILITY = "visibility"


@dataclass(frozen=True)
class Notification:
	"""
	One user-facing notice. The live page at `/` shows it as a desktop notification,
	closes it after `timeout_ms`, and focuses the window when it is clicked.
	"""

	kind: str
	title: str
	body: str = ""
	icon: str = ""
	timeout_ms: int = 4000

	def as_message(self) -> Dict[str, Any]:
		msg = {"type": "notification"}
		msg.update(asdict(self))
		return msg


class Notifier(ABC):
	"""Fire-and-forget notification sink."""

	@abstractmethod
	def notify(self, notification: Notification) -> None: ...


class LogNotifier(Notifier):
	def __init__(self, logger: Optional[Callable[[str], None]] = None) -> None:
		self.logger: Callable[[str], None] = logger or (lambda _msg: None)

	def notify(self, notification: Notification) -> None:
		text = notification.title
		if notification.body:
			text += f" {notification.body}"
		self.logger(f"[Alert:{notification.kind}] {text}")


class WebSocketNotifier(Notifier):
	"""
	Broadcast notifications to WebSocket clients without awaiting delivery.
	Safe to call from synchronous code running on the event loop.
	"""

	def __init__(self, manager: Any) -> None:
		self._manager = manager
		self._tasks: Set[asyncio.Task] = set()

	def notify(self, notification: Notification) -> None:
		try:
			task = asyncio.get_running_loop().create_task(self._manager.broadcast_json(notification.as_message()))
		except RuntimeError:
			# No running loop (e.g. shutdown); nothing to deliver to.
			return
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)


class MultiNotifier(Notifier):
	def __init__(self, *notifiers: Notifier) -> None:
		self.notifiers = list(notifiers)

	def notify(self, notification: Notification) -> None:
		for n in self.notifiers:
			n.notify(notification)


class AlertPolicy:
	"""
	Debounce for repeated alerts, tracked per kind.

	An alert fires when a condition becomes active, and again while it stays
	active once `cooldown_seconds` have passed since the last alert of that kind.
	Clearing the condition re-arms it. cooldown_seconds=0 alerts on every call.
	"""

	def __init__(self, cooldown_seconds: float = 30.0, clock: Optional[Callable[[], float]] = None) -> None:
		self.cooldown_seconds = max(0.0, float(cooldown_seconds))
		self._clock = clock or time.monotonic
		self._active: Dict[str, bool] = {}
		self._last_alert: Dict[str, float] = {}

	def should_alert(self, kind: str, active: bool) -> bool:
		was_active = self._active.get(kind, False)
		self._active[kind] = bool(active)
		if not active:
			return False
		now = self._clock()
		last = self._last_alert.get(kind)
		if was_active and last is not None and (now - last) < self.cooldown_seconds:
			return False
		self._last_alert[kind] = now
		return True

	def is_active(self, kind: str) -> bool:
		return self._active.get(kind, False)


class AlertDispatcher:
	"""Turn posture readings into notifications, subject to the policy."""

	def __init__(
		self,
		notifier: Notifier,
		policy: Optional[AlertPolicy] = None,
		alert_cfg: Optional[AlertConfig] = None,
	) -> None:
		self.cfg = alert_cfg or AlertConfig()
		self.notifier = notifier
		self.policy = policy or AlertPolicy(self.cfg.cooldown_seconds)
		self.sent = {SLOUCH: 0, VISIBILITY: 0}

	def on_reading(self, reading: PostureReading) -> List[Notification]:
		out: List[Notification] = []
		if reading.state == PostureState.UNCERTAIN:
			# Losing sight of the user says nothing about the slouch state.
			if self.policy.should_alert(VISIBILITY, True):
				out.append(self._visibility())
		else:
			self.policy.should_alert(VISIBILITY, False)
			slouching = reading.state == PostureState.SLOUCHING
			if self.policy.should_alert(SLOUCH, slouching):
				out.append(self._slouch())
		for n in out:
			self.sent[n.kind] = self.sent.get(n.kind, 0) + 1
			self.notifier.notify(n)
		return out

	def _slouch(self) -> Notification:
		return Notification(
			kind=SLOUCH,
			title=self.cfg.title,
			body=self.cfg.body,
			icon=self.cfg.icon,
			timeout_ms=int(self.cfg.timeout_ms),
		)

	def _visibility(self) -> Notification:
		return Notification(
			kind=VISIBILITY,
			title=self.cfg.visibility_title,
			body=self.cfg.visibility_body,
			icon=self.cfg.icon,
			timeout_ms=int(self.cfg.timeout_ms),
		)

from __future__ import annotations

import json
import os
import threading
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional


ALGORITHMS = ("single-pose", "multi-pose")
ARCHITECTURES = ("lite", "full", "heavy")
OUTPUT_STRIDES = (8, 16, 32)


class Thresholds(NamedTuple):
	min_pose_confidence: float
	min_part_confidence: float


@dataclass(frozen=True)
class InputConfig:
	architecture: str = "lite"
	output_stride: int = 16
	# Downscale applied before inference; too large an image slows the model down.
	image_scale_factor: float = 0.5


@dataclass(frozen=True)
class SinglePoseConfig:
	min_pose_confidence: float = 0.1
	min_part_confidence: float = 0.5


@dataclass(frozen=True)
class MultiPoseConfig:
	max_detections: int = 2
	min_pose_confidence: float = 0.1
	min_part_confidence: float = 0.3
	nms_radius: float = 20.0


@dataclass(frozen=True)
class OutputConfig:
	show_video: bool = True
	show_skeleton: bool = True
	show_points: bool = True


@dataclass(frozen=True)
class DetectionConfig:
	"""
	Per-frame snapshot of the user-adjustable detection parameters.

	Never mutated in place: the control surface builds a new value with
	`with_changes()` and swaps it into a ConfigStore.
	"""

	algorithm: str = "single-pose"
	input: InputConfig = field(default_factory=InputConfig)
	single: SinglePoseConfig = field(default_factory=SinglePoseConfig)
	multi: MultiPoseConfig = field(default_factory=MultiPoseConfig)
	output: OutputConfig = field(default_factory=OutputConfig)

	def thresholds(self) -> Thresholds:
		"""Pose and part confidence thresholds for the active algorithm."""
		if self.algorithm == "multi-pose":
			return Thresholds(float(self.multi.min_pose_confidence), float(self.multi.min_part_confidence))
		return Thresholds(float(self.single.min_pose_confidence), float(self.single.min_part_confidence))

	def to_dict(self) -> Dict[str, Any]:
		return asdict(self)

	def with_changes(self, changes: Dict[str, Any]) -> "DetectionConfig":
		"""
		Return a validated copy with nested changes applied, e.g.
		{"algorithm": "multi-pose", "output": {"show_video": False}}.
		Raises ValueError for unknown keys or out-of-range values.
		"""
		top: Dict[str, Any] = {}
		for key, value in (changes or {}).items():
			if value is None:
				continue
			if key == "algorithm":
				top["algorithm"] = value
				continue
			section = getattr(self, key, None) if key in _SECTIONS else None
			if section is None:
				raise ValueError(f"unknown config key: {key!r}")
			if not isinstance(value, dict):
				raise ValueError(f"config section {key!r} must be an object")
			sub: Dict[str, Any] = {}
			for k, v in value.items():
				if v is None:
					continue
				if not hasattr(section, k):
					raise ValueError(f"unknown config key: {key}.{k}")
				sub[k] = v
			top[key] = replace(section, **sub)
		out = replace(self, **top)
		validate_detection(out)
		return out


_SECTIONS = ("input", "single", "multi", "output")


def _check_unit(name: str, v: Any) -> None:
	if isinstance(v, bool) or not isinstance(v, (int, float)) or not (0.0 <= float(v) <= 1.0):
		raise ValueError(f"{name} must be a number in [0, 1], got {v!r}")


def _check_bool(name: str, v: Any) -> None:
	if not isinstance(v, bool):
		raise ValueError(f"{name} must be a boolean, got {v!r}")


def validate_detection(cfg: DetectionConfig) -> None:
	if cfg.algorithm not in ALGORITHMS:
		raise ValueError(f"algorithm must be one of {ALGORITHMS}, got {cfg.algorithm!r}")
	if cfg.input.architecture not in ARCHITECTURES:
		raise ValueError(f"architecture must be one of {ARCHITECTURES}, got {cfg.input.architecture!r}")
	if isinstance(cfg.input.output_stride, bool) or cfg.input.output_stride not in OUTPUT_STRIDES:
		raise ValueError(f"output_stride must be one of {OUTPUT_STRIDES}, got {cfg.input.output_stride!r}")
	sf = cfg.input.image_scale_factor
	if isinstance(sf, bool) or not isinstance(sf, (int, float)) or not (0.2 <= float(sf) <= 1.0):
		raise ValueError(f"image_scale_factor must be in [0.2, 1.0], got {sf!r}")
	_check_unit("single.min_pose_confidence", cfg.single.min_pose_confidence)
	_check_unit("single.min_part_confidence", cfg.single.min_part_confidence)
	_check_unit("multi.min_pose_confidence", cfg.multi.min_pose_confidence)
	_check_unit("multi.min_part_confidence", cfg.multi.min_part_confidence)
	md = cfg.multi.max_detections
	if isinstance(md, bool) or not isinstance(md, int) or not (1 <= md <= 20):
		raise ValueError(f"multi.max_detections must be an integer in [1, 20], got {md!r}")
	nr = cfg.multi.nms_radius
	if isinstance(nr, bool) or not isinstance(nr, (int, float)) or not (0.0 <= float(nr) <= 100.0):
		raise ValueError(f"multi.nms_radius must be in [0, 100], got {nr!r}")
	_check_bool("output.show_video", cfg.output.show_video)
	_check_bool("output.show_skeleton", cfg.output.show_skeleton)
	_check_bool("output.show_points", cfg.output.show_points)


@dataclass(frozen=True)
class VideoConfig:
	camera_index: int = 0
	width: int = 500
	height: int = 500
	jpeg_quality: int = 80
	stream_fps: float = 15.0


@dataclass(frozen=True)
class PostureConfig:
	# Nose and both shoulders must be at least this confident to judge posture.
	min_landmark_confidence: float = 0.5
	# Shoulder width / neck height above this reads as slouching.
	slouch_threshold: float = 1.95


@dataclass(frozen=True)
class AlertConfig:
	title: str = "Sit Straight!"
	body: str = ""
	icon: str = ""
	timeout_ms: int = 4000
	# Seconds before a still-active condition alerts again; 0 alerts on every qualifying frame.
	cooldown_seconds: float = 30.0
	visibility_title: str = "Can't see you clearly"
	visibility_body: str = "Make sure your face and both shoulders are in view."


@dataclass(frozen=True)
class ModelConfig:
	# Optional PoseLandmarker .task file; enables true multi-pose detection.
	landmarker_path: str = ""


@dataclass(frozen=True)
class AppConfig:
	detection: DetectionConfig = field(default_factory=DetectionConfig)
	video: VideoConfig = field(default_factory=VideoConfig)
	posture: PostureConfig = field(default_factory=PostureConfig)
	alerts: AlertConfig = field(default_factory=AlertConfig)
	model: ModelConfig = field(default_factory=ModelConfig)


class ConfigStore:
	"""
	Holds the current DetectionConfig snapshot.

	Updates build a complete new value and swap it in under the lock, so a
	reader never observes a half-applied edit.
	"""

	def __init__(self, initial: Optional[DetectionConfig] = None) -> None:
		self._lock = threading.Lock()
		self._current = initial or DetectionConfig()

	def snapshot(self) -> DetectionConfig:
		with self._lock:
			return self._current

	def update(self, changes: Dict[str, Any]) -> DetectionConfig:
		with self._lock:
			new = self._current.with_changes(changes)
			self._current = new
			return new

	def replace(self, cfg: DetectionConfig) -> DetectionConfig:
		validate_detection(cfg)
		with self._lock:
			self._current = cfg
			return cfg


_CONFIG_PATH: Optional[Path] = None
_CONFIG_CACHE: Optional[AppConfig] = None


def _repo_root() -> Path:
	# posecam/config.py -> repo root is one level up.
	return Path(__file__).resolve().parents[1]


def get_default_config_path() -> Path:
	env = os.getenv("POSECAM_CONFIG")
	if env:
		return Path(env).expanduser().resolve()
	return _repo_root() / "config.json"


def set_config_path(path: str | Path) -> None:
	"""
	Override the config path (must be called before first get_config()).
	"""
	global _CONFIG_PATH
	global _CONFIG_CACHE
	_CONFIG_PATH = Path(path).expanduser().resolve()
	_CONFIG_CACHE = None


def _deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
	cur: Any = d
	for k in keys:
		if not isinstance(cur, dict):
			return default
		cur = cur.get(k)
	return cur if cur is not None else default


def _as_int(v: Any, default: int) -> int:
	try:
		return int(v)
	except (TypeError, ValueError):
		return int(default)


def _as_bool(v: Any, default: bool) -> bool:
	if isinstance(v, bool):
		return v
	if isinstance(v, (int, float)):
		return bool(v)
	if isinstance(v, str):
		return v.strip().lower() in ("1", "true", "yes", "on")
	return bool(default)


def _as_str(v: Any, default: str = "") -> str:
	return str(v) if v is not None else str(default)


def _as_float(v: Any, default: float) -> float:
	try:
		return float(v)
	except (TypeError, ValueError):
		return float(default)


def _parse_detection(raw: Dict[str, Any]) -> DetectionConfig:
	d = DetectionConfig()
	cfg = DetectionConfig(
		algorithm=_as_str(_deep_get(raw, ["algorithm"], d.algorithm), d.algorithm).strip().lower(),
		input=InputConfig(
			architecture=_as_str(_deep_get(raw, ["input", "architecture"], d.input.architecture), d.input.architecture).strip().lower(),
			output_stride=_as_int(_deep_get(raw, ["input", "output_stride"], d.input.output_stride), d.input.output_stride),
			image_scale_factor=_as_float(_deep_get(raw, ["input", "image_scale_factor"], d.input.image_scale_factor), d.input.image_scale_factor),
		),
		single=SinglePoseConfig(
			min_pose_confidence=_as_float(_deep_get(raw, ["single", "min_pose_confidence"], d.single.min_pose_confidence), d.single.min_pose_confidence),
			min_part_confidence=_as_float(_deep_get(raw, ["single", "min_part_confidence"], d.single.min_part_confidence), d.single.min_part_confidence),
		),
		multi=MultiPoseConfig(
			max_detections=_as_int(_deep_get(raw, ["multi", "max_detections"], d.multi.max_detections), d.multi.max_detections),
			min_pose_confidence=_as_float(_deep_get(raw, ["multi", "min_pose_confidence"], d.multi.min_pose_confidence), d.multi.min_pose_confidence),
			min_part_confidence=_as_float(_deep_get(raw, ["multi", "min_part_confidence"], d.multi.min_part_confidence), d.multi.min_part_confidence),
			nms_radius=_as_float(_deep_get(raw, ["multi", "nms_radius"], d.multi.nms_radius), d.multi.nms_radius),
		),
		output=OutputConfig(
			show_video=_as_bool(_deep_get(raw, ["output", "show_video"], True), True),
			show_skeleton=_as_bool(_deep_get(raw, ["output", "show_skeleton"], True), True),
			show_points=_as_bool(_deep_get(raw, ["output", "show_points"], True), True),
		),
	)
	try:
		validate_detection(cfg)
	except ValueError:
		# One bad value should not take down the whole section; fall back to defaults.
		return d
	return cfg


def load_config(path: Optional[str | Path] = None) -> AppConfig:
	p = Path(path).expanduser().resolve() if path else (_CONFIG_PATH or get_default_config_path())
	if not p.exists():
		# Defaults-only config; app can still run.
		return AppConfig()
	try:
		raw = json.loads(p.read_text(encoding="utf-8"))
	except (OSError, ValueError):
		# If config is malformed, fail safe to defaults (but keep app running).
		return AppConfig()

	if not isinstance(raw, dict):
		return AppConfig()

	det_raw = raw.get("detection") if isinstance(raw.get("detection"), dict) else {}

	v = VideoConfig()
	cam_idx = _as_int(_deep_get(raw, ["video", "camera_index"], v.camera_index), v.camera_index)
	width = _as_int(_deep_get(raw, ["video", "width"], v.width), v.width)
	height = _as_int(_deep_get(raw, ["video", "height"], v.height), v.height)
	quality = _as_int(_deep_get(raw, ["video", "jpeg_quality"], v.jpeg_quality), v.jpeg_quality)
	stream_fps = _as_float(_deep_get(raw, ["video", "stream_fps"], v.stream_fps), v.stream_fps)

	pc = PostureConfig()
	min_lm = _as_float(_deep_get(raw, ["posture", "min_landmark_confidence"], pc.min_landmark_confidence), pc.min_landmark_confidence)
	slouch_th = _as_float(_deep_get(raw, ["posture", "slouch_threshold"], pc.slouch_threshold), pc.slouch_threshold)

	ac = AlertConfig()
	cooldown = _as_float(_deep_get(raw, ["alerts", "cooldown_seconds"], ac.cooldown_seconds), ac.cooldown_seconds)
	timeout_ms = _as_int(_deep_get(raw, ["alerts", "timeout_ms"], ac.timeout_ms), ac.timeout_ms)

	return AppConfig(
		detection=_parse_detection(det_raw),
		video=VideoConfig(
			# NOTE: camera index 0 is valid; only negative values are rejected.
			camera_index=cam_idx if cam_idx >= 0 else v.camera_index,
			width=width if width > 0 else v.width,
			height=height if height > 0 else v.height,
			jpeg_quality=quality if 1 <= quality <= 95 else v.jpeg_quality,
			stream_fps=stream_fps if stream_fps > 0.0 else v.stream_fps,
		),
		posture=PostureConfig(
			min_landmark_confidence=min_lm if 0.0 <= min_lm <= 1.0 else pc.min_landmark_confidence,
			slouch_threshold=slouch_th if slouch_th > 0.0 else pc.slouch_threshold,
		),
		alerts=AlertConfig(
			title=_as_str(_deep_get(raw, ["alerts", "title"], ac.title), ac.title),
			body=_as_str(_deep_get(raw, ["alerts", "body"], ac.body), ac.body),
			icon=_as_str(_deep_get(raw, ["alerts", "icon"], ac.icon), ac.icon),
			timeout_ms=timeout_ms if timeout_ms >= 0 else ac.timeout_ms,
			cooldown_seconds=cooldown if cooldown >= 0.0 else ac.cooldown_seconds,
			visibility_title=_as_str(_deep_get(raw, ["alerts", "visibility_title"], ac.visibility_title), ac.visibility_title),
			visibility_body=_as_str(_deep_get(raw, ["alerts", "visibility_body"], ac.visibility_body), ac.visibility_body),
		),
		model=ModelConfig(
			landmarker_path=_as_str(_deep_get(raw, ["model", "landmarker_path"], ""), "").strip(),
		),
	)


def get_config() -> AppConfig:
	global _CONFIG_CACHE
	if _CONFIG_CACHE is None:
		_CONFIG_CACHE = load_config()
	return _CONFIG_CACHE

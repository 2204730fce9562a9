"""Pydantic response models for API docs (optional; routes may return dicts)."""
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ConfigResponse(BaseModel):
	"""Response from GET/POST /config."""

	detail: str
	config: Dict[str, Any]
	pending_model: Optional[str] = None


class ModelResponse(BaseModel):
	"""Response from POST /model."""

	detail: str
	architecture: str
	current_model: Optional[str] = None

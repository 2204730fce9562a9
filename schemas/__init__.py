"""Pydantic request/response models for API validation and docs."""
from schemas.requests import (
	DetectionConfigPayload,
	ModelPayload,
)
from schemas.responses import (
	ConfigResponse,
	ModelResponse,
)

__all__ = [
	"DetectionConfigPayload",
	"ModelPayload",
	"ConfigResponse",
	"ModelResponse",
]

"""Pydantic schemas for experiment data and API validation."""
from gacx.schemas.api import SetVariationRequest, VariationResponse
from gacx.schemas.experiment import (
    NO_CHOSEN_VARIATION,
    NOT_PARTICIPATING,
    ORIGINAL_VARIATION,
    CookieSpec,
    ExperimentData,
    VariationDecision,
    VariationRecord,
)

__all__ = [
    "ORIGINAL_VARIATION",
    "NO_CHOSEN_VARIATION",
    "NOT_PARTICIPATING",
    "CookieSpec",
    "ExperimentData",
    "SetVariationRequest",
    "VariationDecision",
    "VariationRecord",
    "VariationResponse",
]

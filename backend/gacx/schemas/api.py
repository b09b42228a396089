"""Request/response schemas for the experiments API."""
from pydantic import BaseModel, Field


class VariationResponse(BaseModel):
    """Variation chosen for the visitor making the request."""

    experiment_id: str
    variation: int
    assigned: bool

    class Config:
        json_schema_extra = {
            "example": {
                "experiment_id": "ft-6uzLPSelrFQsPgouIkD",
                "variation": 2,
                "assigned": True
            }
        }


class SetVariationRequest(BaseModel):
    """Request to force a variation for the visitor making the request."""

    variation: int = Field(..., ge=-2, description="Variation number, -2 for not participating")

    class Config:
        json_schema_extra = {
            "example": {
                "variation": 1
            }
        }

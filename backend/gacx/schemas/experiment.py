"""Experiment data and variation decision schemas."""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional


# Reserved variation numbers, same values as the tracking client uses
ORIGINAL_VARIATION = 0
NO_CHOSEN_VARIATION = -1
NOT_PARTICIPATING = -2


class VariationRecord(BaseModel):
    """One weighted variation as delivered by the experiments endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    # None means the visitor is excluded from the experiment
    variation_id: Optional[int] = Field(None, alias="id")
    weight: Optional[float] = None
    disabled: bool = False

    @field_validator("disabled", mode="before")
    @classmethod
    def null_means_enabled(cls, v):
        # The endpoint may send null or "" for variations that are not disabled
        if v is None or v == "":
            return False
        return v


class ExperimentData(BaseModel):
    """The "data" object of one experiment in the endpoint response."""

    model_config = ConfigDict(extra="ignore")

    items: List[VariationRecord] = Field(default_factory=list)


class CookieSpec(BaseModel):
    """A cookie the response has to set, flags as the tracking client sets them."""

    name: str
    value: str
    expires: int  # unix timestamp
    path: str = "/"
    domain: str
    secure: bool = False
    httponly: bool = False


class VariationDecision(BaseModel):
    """Outcome of choosing a variation for one visitor and experiment."""

    model_config = ConfigDict(frozen=True)

    variation: int
    utmx: Optional[str] = None
    utmxx: Optional[str] = None
    # True when the cookie values were rewritten and have to be sent back
    assigned: bool = False

"""Weighted variation selection (multi-armed bandit weights)."""
import random
from typing import Iterable

from gacx.schemas.experiment import (
    NOT_PARTICIPATING,
    ORIGINAL_VARIATION,
    VariationRecord,
)


def draw_random() -> float:
    """Uniform draw in [0, 1) for select_variation()."""
    return random.random()


def select_variation(records: Iterable[VariationRecord], draw: float) -> int:
    """
    Pick a variation by scanning weighted records in their original order.

    Works the same way as the tracking client's own chooser: the draw is
    walked through the cumulative weights and the first bucket it falls
    into wins. Weights do not have to sum to 1; any remaining probability
    mass falls through to the original.

    Args:
        records: Variation records, in the order the endpoint returned them
        draw: Uniform random number in [0, 1)

    Returns:
        Variation number, NOT_PARTICIPATING or ORIGINAL_VARIATION

    Example:
        >>> records = [VariationRecord(id=None, weight=0.5), VariationRecord(id=5, weight=0.5)]
        >>> select_variation(records, 0.7)
        5
    """
    remaining = draw
    for record in records:
        # Disabled variations normally carry a weight of 0, don't rely on it
        if record.disabled or record.weight is None:
            continue

        if remaining < record.weight:
            if record.variation_id is None:
                return NOT_PARTICIPATING
            return record.variation_id

        remaining -= record.weight

    return ORIGINAL_VARIATION

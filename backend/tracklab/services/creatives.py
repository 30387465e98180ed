"""Weighted-random creative selection."""
import random
from dataclasses import dataclass
from typing import Optional, Sequence

from tracklab.schemas.abtest import Creative


@dataclass(frozen=True)
class SelectedCreative:
    index: int
    creative: Creative


def select_creative(
    creatives: Sequence[Creative],
    rng: Optional[random.Random] = None
) -> Optional[SelectedCreative]:
    """
    Pick a creative with probability proportional to its distribution weight.

    Draws r in [0, total) and walks the list subtracting weights; the first
    creative that takes the remainder to zero or below wins. When every
    weight is zero the first creative is returned without drawing.

    Args:
        creatives: Ordered creatives of one A/B test
        rng: Random source, module-level `random` when omitted

    Returns:
        SelectedCreative, or None for an empty list
    """
    if not creatives:
        return None

    weights = [c.distribution or 0 for c in creatives]
    total = sum(weights)
    if total <= 0:
        return SelectedCreative(index=0, creative=creatives[0])

    remainder = (rng or random).random() * total
    for index, weight in enumerate(weights):
        remainder -= weight
        if remainder <= 0:
            return SelectedCreative(index=index, creative=creatives[index])

    # Float rounding can leave a sliver; it belongs to the last weighted creative
    last = max(i for i, w in enumerate(weights) if w > 0)
    return SelectedCreative(index=last, creative=creatives[last])

"""Discretizes a listing's feature snapshot into a Q-table state key."""
import math
from typing import List

from pricelab.schemas.rl import MarketFeatures, RLState

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _to_int32(value: int) -> int:
    """Wrap an integer to a signed 32-bit value."""
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def state_components(features: MarketFeatures) -> List[int]:
    """
    Ordered integer tuple the hash is computed over.

    Price history and competitor prices are intentionally left out so that
    states alias across them and the table stays tractable.
    """
    return [
        _round_half_up(features.current_price * 100),
        _round_half_up(features.original_price * 100),
        int(features.views),
        int(features.watchers),
        _round_half_up(features.market_trend * 100),
        _round_half_up(features.seasonal_factor * 100),
        int(features.days_since_listing),
    ]


def hash_state(state: RLState) -> str:
    """
    Stable base-36 key for a state.

    Rolling polynomial hash (base 31) over the characters of the
    underscore-joined components, wrapped to signed 32 bits at every
    step, then made non-negative.
    """
    return hash_features(state.features)


def hash_features(features: MarketFeatures) -> str:
    state_string = "_".join(str(c) for c in state_components(features))

    h = 0
    for char in state_string:
        h = _to_int32(h * 31 + ord(char))

    return _to_base36(abs(h))

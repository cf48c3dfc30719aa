"""Tests for state hashing."""
import re

from pricelab.schemas.rl import MarketFeatures, RLState
from pricelab.services.state_encoder import (
    _round_half_up, _to_int32, _to_base36, state_components, hash_state, hash_features
)


def make_state(**overrides):
    features = {
        "current_price": 100.0,
        "original_price": 120.0,
        "price_history": [100.0, 110.0],
        "views": 250,
        "watchers": 12,
        "competitor_prices": [95.0, 105.0],
        "market_trend": 0.02,
        "seasonal_factor": 1.05,
        "days_since_listing": 14,
        "category_demand": 0.5,
    }
    features.update(overrides)
    return RLState(listing_id="listing-1", features=MarketFeatures(**features))


def test_round_half_up():
    assert _round_half_up(12.5) == 13
    assert _round_half_up(2.5) == 3  # round() would give 2
    assert _round_half_up(2.4) == 2


def test_to_int32_wraps():
    assert _to_int32(2 ** 31 - 1) == 2 ** 31 - 1
    assert _to_int32(2 ** 31) == -(2 ** 31)
    assert _to_int32(2 ** 32 + 5) == 5


def test_to_base36():
    assert _to_base36(0) == "0"
    assert _to_base36(35) == "z"
    assert _to_base36(36) == "10"


def test_state_components_order_and_scaling():
    state = make_state()

    assert state_components(state.features) == [10000, 12000, 250, 12, 2, 105, 14]


def test_hash_is_stable_and_base36():
    first = hash_state(make_state())
    second = hash_state(make_state())

    assert first == second
    assert re.fullmatch(r"[0-9a-z]+", first)


def test_hash_matches_features_hash():
    state = make_state()

    assert hash_state(state) == hash_features(state.features)


def test_hash_changes_with_hashed_components():
    base = hash_state(make_state())

    assert hash_state(make_state(current_price=101.0)) != base
    assert hash_state(make_state(views=251)) != base
    assert hash_state(make_state(days_since_listing=15)) != base
    assert hash_state(make_state(original_price=121.0)) != base
    assert hash_state(make_state(watchers=13)) != base
    assert hash_state(make_state(market_trend=0.05)) != base
    assert hash_state(make_state(seasonal_factor=1.10)) != base


def test_hash_ignores_price_history_competitors_and_demand():
    """States alias across price history, competitor prices and category demand."""
    base = hash_state(make_state())

    assert hash_state(make_state(price_history=[1.0, 2.0, 3.0])) == base
    assert hash_state(make_state(competitor_prices=[])) == base
    assert hash_state(make_state(category_demand=0.9)) == base


def test_hash_ignores_listing_id():
    features = make_state().features

    assert hash_state(RLState(listing_id="a", features=features)) == hash_state(RLState(listing_id="b", features=features))

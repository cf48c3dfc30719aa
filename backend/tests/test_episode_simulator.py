"""Tests for the offline episode simulator."""
import random
import pytest

from pricelab.schemas.rl import MarketFeatures, PricingAction, RLReward, RLState
from pricelab.services.episode_simulator import (
    EpisodeSimulator, simulate_action, should_terminate, convergence_diagnostics, MAX_STEPS
)
from pricelab.services.exceptions import TrainingInterrupted
from pricelab.services.q_policy import QPolicy
from fakes import InMemoryQValueRepository


def make_state(price=100.0, original=100.0, competitors=(100.0,), history=(100.0,), views=100, watchers=10):
    return RLState(
        listing_id="l1",
        features=MarketFeatures(
            current_price=price,
            original_price=original,
            price_history=list(history),
            views=views,
            watchers=watchers,
            competitor_prices=list(competitors),
        ),
    )


def test_decrease_moves_price_and_demand():
    state = make_state()

    reward, next_state = simulate_action(state, PricingAction(action_type="decrease", magnitude=0.1))

    features = next_state.features
    assert features.current_price == pytest.approx(90.0)
    assert features.price_history == [pytest.approx(90.0), 100.0]
    assert features.views == 112
    assert features.watchers == 11
    # revenue change = -0.1 + 0.12 - 0.012
    assert reward.immediate == pytest.approx(0.008)
    assert reward.delayed == 0.1  # 90 is under 1.1 x the competitor average
    assert reward.total == pytest.approx(0.058)


def test_increase_above_competitors_is_penalized():
    reward, next_state = simulate_action(make_state(competitors=(90.0,)), PricingAction(action_type="increase", magnitude=0.2))

    assert next_state.features.current_price == pytest.approx(120.0)
    assert reward.delayed == -0.1
    assert next_state.features.views < 100


def test_maintain_keeps_price():
    reward, next_state = simulate_action(make_state(), PricingAction(action_type="maintain"))

    assert next_state.features.current_price == 100.0
    assert next_state.features.views == 100
    assert reward.immediate == 0.0


def test_no_competitors_counts_as_overpriced():
    reward, _ = simulate_action(make_state(competitors=()), PricingAction(action_type="maintain"))

    assert reward.delayed == -0.1


def test_history_is_capped_at_ten():
    state = make_state(history=[100.0] * 10)

    _, next_state = simulate_action(state, PricingAction(action_type="decrease", magnitude=0.05))

    assert len(next_state.features.price_history) == 10
    assert next_state.features.price_history[0] == pytest.approx(95.0)


def test_views_never_go_negative():
    _, next_state = simulate_action(make_state(views=3, watchers=0), PricingAction(action_type="increase", magnitude=0.2))

    assert next_state.features.views == 0
    assert next_state.features.watchers == 0


def test_should_terminate():
    fine = RLReward(immediate=0.0, delayed=0.0, total=0.0)

    assert should_terminate(make_state(), fine) is False
    assert should_terminate(make_state(), RLReward(immediate=-1.0, delayed=-0.1, total=-1.05)) is True
    assert should_terminate(make_state(price=49.0), fine) is True
    assert should_terminate(make_state(price=201.0), fine) is True
    assert should_terminate(make_state(price=50.0), fine) is False


def test_convergence_diagnostics():
    assert convergence_diagnostics([1.0, -1.0]) == {"policy_loss": 1.0, "value_loss": 0.0, "entropy": 1.0}
    assert convergence_diagnostics([]) == {"policy_loss": 0.0, "value_loss": 0.0, "entropy": 0.0}
    assert convergence_diagnostics([3.0, -1.0])["entropy"] == 1.0


@pytest.fixture
def simulator():
    states = {"l1": make_state(), "l2": make_state(price=50.0, original=50.0, competitors=(60.0, 40.0))}
    policy = QPolicy(InMemoryQValueRepository(), rng=random.Random(21))
    return EpisodeSimulator(policy, lambda listing_id: states[listing_id])


def test_episode_is_bounded(simulator):
    episode = simulator.run_episode("l1", exploration_rate=1.0)

    assert 1 <= episode.length <= MAX_STEPS
    assert len(episode.states) == episode.length + 1
    assert len(episode.transitions()) == episode.length


def test_train_updates_table_and_decays_exploration(simulator):
    result = simulator.train(["l1", "l2"], episodes=20, exploration_rate=0.5)

    assert result["episodes_completed"] == 20
    assert result["model_performance"]["exploration_rate"] == pytest.approx(0.5 * 0.995 ** 20)
    assert 0.0 <= result["model_performance"]["success_rate"] <= 1.0
    assert set(result["convergence_metrics"]) == {"policy_loss", "value_loss", "entropy"}
    assert simulator.policy.repository.values


def test_train_defaults_exploration_rate(simulator):
    result = simulator.train(["l1"], episodes=1)

    assert result["model_performance"]["exploration_rate"] == pytest.approx(0.1 * 0.995)


def test_train_stops_when_asked(simulator):
    calls = []

    def should_stop():
        calls.append(1)
        return "cancelled" if len(calls) > 3 else None

    with pytest.raises(TrainingInterrupted) as exc_info:
        simulator.train(["l1"], episodes=10, should_stop=should_stop)

    assert exc_info.value.reason == "cancelled"
    assert exc_info.value.episodes_completed == 3


def test_train_requires_listings(simulator):
    with pytest.raises(ValueError):
        simulator.train([], episodes=1)

"""Offline training of the Q-policy on simulated pricing episodes.

The market model is deliberately crude: demand responds to price with a
fixed elasticity and the long-term reward only looks at where the new price
sits against the competition. Convergence metrics are diagnostics computed
from reward variance, not a convergence proof.
"""
import math
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from pricelab.schemas.rl import PricingAction, RLReward, RLState
from pricelab.services.exceptions import TrainingInterrupted
from pricelab.services.q_policy import QPolicy, LEARNING_RATE, DISCOUNT_FACTOR, EXPLORATION_RATE
from pricelab.services.state_encoder import hash_state
from pricelab.middleware.logging import get_logger

logger = get_logger()

MAX_STEPS = 10
DEMAND_ELASTICITY = -1.2
COMPETITIVE_MARKUP = 1.1  # Priced under 1.1x the competitor average counts as well positioned
MARKET_POSITION_REWARD = 0.1
DELAYED_REWARD_WEIGHT = 0.5
TERMINAL_REWARD = -0.8
MIN_PRICE_RATIO = 0.5
MAX_PRICE_RATIO = 2.0
EXPLORATION_DECAY = 0.995
DIAGNOSTIC_INTERVAL = 10
DIAGNOSTIC_WINDOW = 100


@dataclass
class Episode:
    """One simulated run on a listing. Not persisted."""

    listing_id: str
    states: List[RLState] = field(default_factory=list)
    actions: List[PricingAction] = field(default_factory=list)
    rewards: List[RLReward] = field(default_factory=list)

    @property
    def total_reward(self) -> float:
        return sum(r.total for r in self.rewards)

    @property
    def length(self) -> int:
        return len(self.actions)

    def transitions(self) -> List[Tuple[RLState, PricingAction, RLReward, RLState]]:
        return [
            (self.states[i], self.actions[i], self.rewards[i], self.states[i + 1])
            for i in range(len(self.actions))
        ]


def simulate_action(state: RLState, action: PricingAction) -> Tuple[RLReward, RLState]:
    """Apply an action to a state and return the market's reward and the next state."""
    features = state.features
    new_price = features.current_price
    if action.action_type == "increase":
        new_price *= 1 + action.magnitude
    elif action.action_type == "decrease":
        new_price *= 1 - action.magnitude

    price_change = (new_price - features.current_price) / features.current_price
    demand_change = DEMAND_ELASTICITY * price_change

    revenue_change = price_change + demand_change + price_change * demand_change
    immediate = max(-1.0, min(1.0, revenue_change))

    competitor_avg = sum(features.competitor_prices) / max(1, len(features.competitor_prices))
    delayed = MARKET_POSITION_REWARD if new_price < competitor_avg * COMPETITIVE_MARKUP else -MARKET_POSITION_REWARD

    reward = RLReward(
        immediate=immediate,
        delayed=delayed,
        total=immediate + delayed * DELAYED_REWARD_WEIGHT,
    )

    next_features = features.model_copy(update={
        "current_price": new_price,
        "price_history": [new_price] + list(features.price_history[:9]),
        "views": max(0, features.views + math.floor(demand_change * 100)),
        "watchers": max(0, features.watchers + math.floor(demand_change * 10)),
    })
    return reward, RLState(listing_id=state.listing_id, features=next_features)


def should_terminate(state: RLState, reward: RLReward) -> bool:
    """Stop on a very bad step or once the price has drifted too far from the original."""
    if reward.total < TERMINAL_REWARD:
        return True
    features = state.features
    if features.current_price < features.original_price * MIN_PRICE_RATIO:
        return True
    if features.current_price > features.original_price * MAX_PRICE_RATIO:
        return True
    return False


def convergence_diagnostics(rewards: Sequence[float]) -> dict:
    """Variance-based stand-ins for policy loss, value loss and entropy."""
    count = max(1, len(rewards))
    mean = sum(rewards) / count
    variance = sum((r - mean) ** 2 for r in rewards) / count
    return {
        "policy_loss": variance,
        "value_loss": abs(mean),
        "entropy": min(1.0, variance),
    }


class EpisodeSimulator:
    """Runs bounded episodes against a QPolicy and feeds the transitions back into it."""

    def __init__(self, policy: QPolicy, state_provider: Callable[[str], RLState], rng: Optional[random.Random] = None):
        """
        Args:
            policy: Policy whose Q-table is trained
            state_provider: Returns the current state of a listing id
            rng: Random source for listing choice and exploration
        """
        self.policy = policy
        self.state_provider = state_provider
        self.rng = rng or policy.rng

    def run_episode(self, listing_id: str, exploration_rate: float) -> Episode:
        episode = Episode(listing_id=listing_id)
        state = self.state_provider(listing_id)
        episode.states.append(state)

        for _ in range(MAX_STEPS):
            action = self.policy.epsilon_greedy(state, exploration_rate)
            reward, next_state = simulate_action(state, action)

            episode.actions.append(action)
            episode.rewards.append(reward)
            episode.states.append(next_state)
            state = next_state

            if should_terminate(next_state, reward):
                break

        return episode

    def apply_episode(self, episode: Episode, learning_rate: float, discount_factor: float) -> None:
        """Q-update every transition of the episode in order."""
        for state, action, reward, next_state in episode.transitions():
            self.policy.update(
                hash_state(state),
                action.to_key(),
                reward.total,
                hash_state(next_state),
                learning_rate=learning_rate,
                discount_factor=discount_factor
            )

    def train(
        self,
        listing_ids: Sequence[str],
        episodes: int,
        learning_rate: Optional[float] = None,
        discount_factor: Optional[float] = None,
        exploration_rate: Optional[float] = None,
        should_stop: Optional[Callable[[], Optional[str]]] = None
    ) -> dict:
        """
        Train for a number of episodes on randomly chosen listings.

        The exploration rate decays by 0.995 after every episode and is
        shared across the whole run.

        Args:
            should_stop: Checked before each episode; a non-empty return
                value (the reason) stops the run

        Returns:
            Training summary: episodes_completed, avg_reward, convergence_metrics, model_performance

        Raises:
            TrainingInterrupted: should_stop asked to stop; updates already applied are kept
        """
        if not listing_ids:
            raise ValueError("listing_ids must not be empty")

        learning_rate = LEARNING_RATE if learning_rate is None else learning_rate
        discount_factor = DISCOUNT_FACTOR if discount_factor is None else discount_factor
        epsilon = EXPLORATION_RATE if exploration_rate is None else exploration_rate

        total_reward = 0.0
        episodes_completed = 0
        episode_means: List[float] = []
        recent_rewards: List[float] = []
        metrics = {"policy_loss": 0.0, "value_loss": 0.0, "entropy": 0.0}

        for index in range(episodes):
            if should_stop:
                reason = should_stop()
                if reason:
                    raise TrainingInterrupted(reason, episodes_completed)

            listing_id = self.rng.choice(list(listing_ids))
            episode = self.run_episode(listing_id, epsilon)
            self.apply_episode(episode, learning_rate, discount_factor)

            total_reward += episode.total_reward
            episodes_completed += 1
            step_rewards = [r.total for r in episode.rewards]
            episode_means.append(sum(step_rewards) / max(1, len(step_rewards)))
            recent_rewards = (recent_rewards + step_rewards)[-DIAGNOSTIC_WINDOW:]

            epsilon *= EXPLORATION_DECAY

            if index % DIAGNOSTIC_INTERVAL == 0:
                metrics = convergence_diagnostics(recent_rewards)
                logger.info(
                    "rl_training_progress",
                    episode=index,
                    listing_id=listing_id,
                    episode_length=episode.length,
                    exploration_rate=round(epsilon, 4),
                    **metrics
                )

        successful = [m for m in episode_means if m > 0]
        return {
            "episodes_completed": episodes_completed,
            "avg_reward": total_reward / episodes_completed if episodes_completed else 0.0,
            "convergence_metrics": metrics,
            "model_performance": {
                "success_rate": len(successful) / len(episode_means) if episode_means else 0.0,
                "avg_return": sum(episode_means) / max(1, len(episode_means)),
                "exploration_rate": epsilon,
            },
        }

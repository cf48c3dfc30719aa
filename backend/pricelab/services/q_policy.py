"""Tabular Q-learning policy over price-adjustment actions.

The Q-table is reached through a repository object so the policy can run
against the database in production and an in-memory table in tests.
Updates are read-modify-write without locking: two concurrent updates of
the same (state, action) can lose one increment. Last writer wins.
"""
import math
import random
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pricelab.models.rl import QValue
from pricelab.schemas.rl import PricingAction, RLState, MAX_ACTION_MAGNITUDE
from pricelab.services.state_encoder import hash_state
from pricelab.middleware.logging import get_logger

logger = get_logger()

ACTION_TYPES = ("increase", "decrease", "maintain")

LEARNING_RATE = 0.1
DISCOUNT_FACTOR = 0.95
EXPLORATION_RATE = 0.1
SOFTMAX_TEMPERATURE = 1.0


class SqlQValueRepository:
    """Q-table stored in the q_values table."""

    def __init__(self, db: Session):
        self.db = db

    def list_for_state(self, state_hash: str) -> List[Tuple[str, float]]:
        """(action_key, q_value) rows for a state, best first."""
        rows = self.db.query(QValue.action, QValue.q_value).filter(
            QValue.state_hash == state_hash
        ).order_by(QValue.q_value.desc(), QValue.id).all()
        return [(row.action, row.q_value) for row in rows]

    def get(self, state_hash: str, action_key: str) -> Optional[float]:
        row = self.db.query(QValue.q_value).filter(
            QValue.state_hash == state_hash,
            QValue.action == action_key
        ).first()
        return row.q_value if row else None

    def max_q(self, state_hash: str) -> Optional[float]:
        return self.db.query(func.max(QValue.q_value)).filter(
            QValue.state_hash == state_hash
        ).scalar()

    def save(self, state_hash: str, action_key: str, q_value: float) -> None:
        """Insert the entry with one visit, or overwrite it and count another visit."""
        now = datetime.utcnow()
        updated = self.db.query(QValue).filter(
            QValue.state_hash == state_hash,
            QValue.action == action_key
        ).update(
            {
                QValue.q_value: q_value,
                QValue.visit_count: QValue.visit_count + 1,
                QValue.last_updated: now,
            },
            synchronize_session=False
        )
        if not updated:
            self.db.add(QValue(
                state_hash=state_hash,
                action=action_key,
                q_value=q_value,
                visit_count=1,
                last_updated=now
            ))
        try:
            self.db.commit()
        except IntegrityError:
            # Inserted concurrently; fall back to overwriting it
            self.db.rollback()
            self.db.query(QValue).filter(
                QValue.state_hash == state_hash,
                QValue.action == action_key
            ).update(
                {
                    QValue.q_value: q_value,
                    QValue.visit_count: QValue.visit_count + 1,
                    QValue.last_updated: now,
                },
                synchronize_session=False
            )
            self.db.commit()


def softmax(values: List[float], temperature: float = SOFTMAX_TEMPERATURE) -> List[float]:
    """Numerically stable softmax."""
    if not values:
        return []
    peak = max(values)
    exps = [math.exp((v - peak) / temperature) for v in values]
    total = sum(exps)
    return [e / total for e in exps]


def q_learning_target(old_q: float, reward: float, max_next_q: float, learning_rate: float, discount_factor: float) -> float:
    """Q(s,a) + alpha * (r + gamma * max_a' Q(s',a') - Q(s,a))."""
    return old_q + learning_rate * (reward + discount_factor * max_next_q - old_q)


class QPolicy:
    """Action selection and temporal-difference updates over a Q-table repository."""

    def __init__(
        self,
        repository,
        rng: Optional[random.Random] = None,
        learning_rate: float = LEARNING_RATE,
        discount_factor: float = DISCOUNT_FACTOR,
        exploration_rate: float = EXPLORATION_RATE,
        temperature: float = SOFTMAX_TEMPERATURE
    ):
        self.repository = repository
        self.rng = rng or random.Random()
        self.learning_rate = learning_rate
        self.discount_factor = discount_factor
        self.exploration_rate = exploration_rate
        self.temperature = temperature

    def random_action(self) -> PricingAction:
        """Uniform action type; magnitude in [0, 0.2), zero for maintain."""
        action_type = self.rng.choice(ACTION_TYPES)
        magnitude = 0.0
        if action_type != "maintain":
            magnitude = self.rng.random() * MAX_ACTION_MAGNITUDE
        return PricingAction(
            action_type=action_type,
            magnitude=magnitude,
            confidence=0.5 + self.rng.random() * 0.5,
        )

    def known_actions(self, state_hash: str) -> List[Tuple[PricingAction, str, float]]:
        """Parsed (action, key, q_value) rows for a state, best first. Unparseable keys are skipped."""
        parsed = []
        for key, q_value in self.repository.list_for_state(state_hash):
            try:
                parsed.append((PricingAction.from_key(key), key, q_value))
            except ValidationError:
                logger.warning("q_value_action_unparseable", state_hash=state_hash, action=key)
        return parsed

    def best_action(self, state: RLState) -> PricingAction:
        """Highest-valued known action for the state, or a random one."""
        known = self.known_actions(hash_state(state))
        if known:
            return known[0][0]
        return self.random_action()

    def epsilon_greedy(self, state: RLState, exploration_rate: float) -> PricingAction:
        if self.rng.random() < exploration_rate:
            return self.random_action()
        return self.best_action(state)

    def get_action(self, state: RLState, exploration_mode: bool = False) -> Dict:
        """
        Choose an action for a state.

        Explores (random action, expected reward 0, no probabilities) when
        the state has no Q-values yet, or with the exploration rate when
        ``exploration_mode`` is on. Otherwise exploits the best Q-value and
        reports a softmax over all known actions.

        Returns:
            Dict with action, expected_reward, state_value, action_probabilities
        """
        state_hash = hash_state(state)
        known = self.known_actions(state_hash)

        state_value = sum(q for _, _, q in known) / len(known) if known else 0.0

        if not known or (exploration_mode and self.rng.random() < self.exploration_rate):
            return {
                "action": self.random_action(),
                "expected_reward": 0.0,
                "state_value": state_value,
                "action_probabilities": {},
                "state_hash": state_hash,
            }

        best_action, _, best_q = known[0]
        probabilities = softmax([q for _, _, q in known], self.temperature)

        return {
            "action": best_action,
            "expected_reward": best_q,
            "state_value": state_value,
            "action_probabilities": {key: p for (_, key, _), p in zip(known, probabilities)},
            "state_hash": state_hash,
        }

    def update(
        self,
        state_hash: str,
        action_key: str,
        reward: float,
        next_state_hash: str,
        learning_rate: Optional[float] = None,
        discount_factor: Optional[float] = None
    ) -> float:
        """
        Apply one Q-learning update. Missing entries count as 0.

        Returns:
            The new Q-value
        """
        alpha = self.learning_rate if learning_rate is None else learning_rate
        gamma = self.discount_factor if discount_factor is None else discount_factor

        old_q = self.repository.get(state_hash, action_key) or 0.0
        max_next_q = self.repository.max_q(next_state_hash) or 0.0

        new_q = q_learning_target(old_q, reward, max_next_q, alpha, gamma)
        self.repository.save(state_hash, action_key, new_q)
        return new_q

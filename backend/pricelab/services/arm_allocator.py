"""Strategy allocation for experiment listings.

The allocator is pure: given the listings, the strategies, an arm snapshot
and an RNG it always produces the same assignments. Persistence of the
result is the caller's job.
"""
import random
from typing import List, Optional, Sequence, Tuple

from pricelab.services.bandit_stats import ArmSnapshot
from pricelab.services.exceptions import InvalidArgument

EPSILON = 0.10  # Exploration rate for epsilon-greedy

ALLOCATION_METHODS = ("equal", "epsilon_greedy", "thompson_sampling")


class ArmAllocator:
    """Chooses a strategy id per listing using equal, epsilon-greedy or Thompson sampling."""

    def __init__(self, rng: Optional[random.Random] = None, epsilon: float = EPSILON):
        self.rng = rng or random.Random()
        self.epsilon = epsilon

    def allocate(
        self,
        listing_ids: Sequence[str],
        strategy_ids: Sequence[str],
        method: str,
        arms: Sequence[ArmSnapshot] = (),
        start_index: int = 0
    ) -> List[Tuple[str, str]]:
        """
        Assign every listing a strategy.

        Args:
            listing_ids: Listings in assignment order
            strategy_ids: Strategy ids in declaration order
            method: "equal", "epsilon_greedy" or "thompson_sampling"
            arms: Current bandit arm state (read-only)
            start_index: Offset for round-robin when adding to an existing experiment

        Returns:
            List of (listing_id, strategy_id) in input order

        Raises:
            InvalidArgument: Unknown method or no strategies
        """
        if not strategy_ids:
            raise InvalidArgument("At least one strategy is required for allocation")
        if method not in ALLOCATION_METHODS:
            raise InvalidArgument(f"Unknown allocation method: {method}")

        assignments = []
        for i, listing_id in enumerate(listing_ids):
            if method == "equal":
                strategy_id = self.select_round_robin(start_index + i, strategy_ids)
            elif method == "epsilon_greedy":
                strategy_id = self.select_epsilon_greedy(strategy_ids, arms)
            else:
                strategy_id = self.select_thompson(strategy_ids, arms)
            assignments.append((listing_id, strategy_id))

        return assignments

    @staticmethod
    def select_round_robin(index: int, strategy_ids: Sequence[str]) -> str:
        return strategy_ids[index % len(strategy_ids)]

    def select_epsilon_greedy(self, strategy_ids: Sequence[str], arms: Sequence[ArmSnapshot]) -> str:
        """Random strategy with probability epsilon, otherwise the arm with the best average reward."""
        if self.rng.random() < self.epsilon:
            return self.rng.choice(list(strategy_ids))

        best = None
        for arm in arms:
            # Strict comparison keeps the first-seen arm on ties
            if best is None or arm.avg_reward > best.avg_reward:
                best = arm

        return best.arm_id if best else strategy_ids[0]

    def select_thompson(self, strategy_ids: Sequence[str], arms: Sequence[ArmSnapshot]) -> str:
        """Arm with the largest draw from its Beta posterior; uniform when there are no arms yet."""
        if not arms:
            return self.rng.choice(list(strategy_ids))

        best_arm = arms[0]
        best_sample = best_arm.sample(self.rng)
        for arm in arms[1:]:
            sample = arm.sample(self.rng)
            if sample > best_sample:
                best_arm, best_sample = arm, sample

        return best_arm.arm_id

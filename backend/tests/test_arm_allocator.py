"""Tests for strategy allocation."""
import random
from collections import Counter
import pytest

from pricelab.services.arm_allocator import ArmAllocator
from pricelab.services.bandit_stats import ArmSnapshot
from pricelab.services.exceptions import InvalidArgument


def listings(n):
    return [f"listing-{i}" for i in range(n)]


def test_equal_allocation_round_robin():
    """Ten listings over two strategies split 5/5, alternating in input order."""
    allocator = ArmAllocator(random.Random(0))

    pairs = allocator.allocate(listings(10), ["A", "B"], "equal")

    assert [listing_id for listing_id, _ in pairs] == listings(10)
    assert [s for _, s in pairs] == ["A", "B"] * 5
    assert Counter(s for _, s in pairs) == {"A": 5, "B": 5}


def test_equal_allocation_uneven_split():
    allocator = ArmAllocator(random.Random(0))

    counts = Counter(s for _, s in allocator.allocate(listings(7), ["A", "B", "C"], "equal"))

    assert counts == {"A": 3, "B": 2, "C": 2}


def test_equal_allocation_continues_from_start_index():
    allocator = ArmAllocator(random.Random(0))

    pairs = allocator.allocate(listings(3), ["A", "B"], "equal", start_index=5)

    assert [s for _, s in pairs] == ["B", "A", "B"]


def test_unknown_method_rejected():
    with pytest.raises(InvalidArgument):
        ArmAllocator(random.Random(0)).allocate(listings(2), ["A", "B"], "round_robin")


def test_empty_strategies_rejected():
    with pytest.raises(InvalidArgument):
        ArmAllocator(random.Random(0)).allocate(listings(2), [], "equal")


def test_no_listings_no_assignments():
    assert ArmAllocator(random.Random(0)).allocate([], ["A", "B"], "thompson_sampling") == []


def test_thompson_with_equal_priors_is_near_uniform():
    """Two Beta(1, 1) arms each get about half of 10,000 listings."""
    allocator = ArmAllocator(random.Random(12345))
    arms = [ArmSnapshot("A"), ArmSnapshot("B")]

    counts = Counter(s for _, s in allocator.allocate(listings(10000), ["A", "B"], "thompson_sampling", arms))

    assert abs(counts["A"] - 5000) <= 500
    assert abs(counts["B"] - 5000) <= 500


def test_thompson_favors_stronger_posterior():
    allocator = ArmAllocator(random.Random(5))
    arms = [ArmSnapshot("weak", alpha=5, beta=50), ArmSnapshot("strong", alpha=50, beta=5)]

    counts = Counter(s for _, s in allocator.allocate(listings(500), ["weak", "strong"], "thompson_sampling", arms))

    assert counts["strong"] > 490


def test_thompson_without_arms_picks_known_strategies():
    allocator = ArmAllocator(random.Random(8))

    pairs = allocator.allocate(listings(50), ["A", "B", "C"], "thompson_sampling")

    assert {s for _, s in pairs} <= {"A", "B", "C"}


def test_thompson_is_reproducible_with_seed():
    arms = [ArmSnapshot("A", alpha=2, beta=3), ArmSnapshot("B", alpha=3, beta=2)]

    first = ArmAllocator(random.Random(77)).allocate(listings(20), ["A", "B"], "thompson_sampling", arms)
    second = ArmAllocator(random.Random(77)).allocate(listings(20), ["A", "B"], "thompson_sampling", arms)

    assert first == second


def test_epsilon_greedy_exploits_best_average():
    allocator = ArmAllocator(random.Random(0), epsilon=0.0)
    arms = [ArmSnapshot("A", avg_reward=0.2), ArmSnapshot("B", avg_reward=0.7), ArmSnapshot("C", avg_reward=0.4)]

    pairs = allocator.allocate(listings(5), ["A", "B", "C"], "epsilon_greedy", arms)

    assert {s for _, s in pairs} == {"B"}


def test_epsilon_greedy_tie_keeps_first_arm():
    allocator = ArmAllocator(random.Random(0), epsilon=0.0)
    arms = [ArmSnapshot("A", avg_reward=0.5), ArmSnapshot("B", avg_reward=0.5)]

    assert allocator.select_epsilon_greedy(["A", "B"], arms) == "A"


def test_epsilon_greedy_without_arms_uses_first_strategy():
    allocator = ArmAllocator(random.Random(0), epsilon=0.0)

    assert allocator.select_epsilon_greedy(["A", "B"], []) == "A"


def test_epsilon_greedy_explores_at_rate():
    allocator = ArmAllocator(random.Random(2024), epsilon=1.0)
    arms = [ArmSnapshot("A", avg_reward=0.9), ArmSnapshot("B", avg_reward=0.1)]

    counts = Counter(s for _, s in allocator.allocate(listings(2000), ["A", "B"], "epsilon_greedy", arms))

    assert counts["B"] > 800

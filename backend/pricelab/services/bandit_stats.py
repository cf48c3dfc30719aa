"""Beta posterior model for bandit arms and the samplers behind it.

Sampling is implemented by hand (Marsaglia-Tsang for Gamma, Box-Muller for
the normal variates it needs) and always draws from an explicit
``random.Random`` so that allocation is reproducible under a fixed seed.
"""
import math
import random
from dataclasses import dataclass

# Outcome scores above this count as a success for the Beta posterior
SUCCESS_THRESHOLD = 0.6


def sample_standard_normal(rng: random.Random) -> float:
    """Box-Muller transform."""
    u1 = 1.0 - rng.random()  # (0, 1], keeps log() finite
    u2 = rng.random()
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def sample_gamma(shape: float, rng: random.Random) -> float:
    """
    Draw from Gamma(shape, 1).

    Uses the Marsaglia-Tsang squeeze method for shape >= 1 and the boosting
    identity G(a) = G(a + 1) * U^(1/a) below that.
    """
    if shape <= 0:
        raise ValueError(f"Gamma shape must be positive, got {shape}")

    if shape < 1:
        u = 1.0 - rng.random()
        return sample_gamma(shape + 1.0, rng) * u ** (1.0 / shape)

    d = shape - 1.0 / 3.0
    c = 1.0 / math.sqrt(9.0 * d)

    while True:
        x = sample_standard_normal(rng)
        v = 1.0 + c * x
        while v <= 0:
            x = sample_standard_normal(rng)
            v = 1.0 + c * x

        v = v * v * v
        u = rng.random()

        if u < 1.0 - 0.0331 * x ** 4:
            return d * v
        if u > 0 and math.log(u) < 0.5 * x * x + d * (1.0 - v + math.log(v)):
            return d * v


def sample_beta(alpha: float, beta: float, rng: random.Random) -> float:
    """theta = G(alpha) / (G(alpha) + G(beta))."""
    g1 = sample_gamma(alpha, rng)
    g2 = sample_gamma(beta, rng)
    return g1 / (g1 + g2)


@dataclass(frozen=True)
class ArmSnapshot:
    """Read-only view of a bandit arm handed to the allocator."""

    arm_id: str
    alpha: float = 1.0
    beta: float = 1.0
    visit_count: int = 0
    avg_reward: float = 0.0

    def sample(self, rng: random.Random) -> float:
        return sample_beta(self.alpha, self.beta, rng)

    @property
    def posterior_mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)


def is_success(outcome_score: float) -> bool:
    return outcome_score > SUCCESS_THRESHOLD


def snapshot_from_arm(arm) -> ArmSnapshot:
    """Build an ArmSnapshot from a BanditArm row."""
    return ArmSnapshot(
        arm_id=arm.arm_id,
        alpha=arm.alpha,
        beta=arm.beta,
        visit_count=arm.visit_count,
        avg_reward=arm.avg_reward,
    )

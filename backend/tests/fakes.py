"""In-memory stand-ins for Redis and the Q-table used by unit tests."""
from typing import Dict, List, Optional, Tuple


class FakePipeline:
    """Queues commands and applies them on execute()."""

    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    def sadd(self, key, *members):
        self.commands.append(("sadd", key, members))
        return self

    def expire(self, key, seconds):
        self.commands.append(("expire", key, (seconds,)))
        return self

    def execute(self):
        results = [getattr(self.redis, name)(key, *args) for name, key, args in self.commands]
        self.commands = []
        return results


class FakeRedis:
    """The subset of redis.Redis the services use, with decode_responses semantics."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.sets: Dict[str, set] = {}
        self.published: List[Tuple[str, str]] = []

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, ex=None):
        self.values[key] = value
        return True

    def exists(self, *keys):
        return sum(1 for key in keys if key in self.values or key in self.sets)

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            removed += int(self.sets.pop(key, None) is not None)
        return removed

    def sadd(self, key, *members):
        members_set = self.sets.setdefault(key, set())
        before = len(members_set)
        members_set.update(members)
        return len(members_set) - before

    def srem(self, key, *members):
        members_set = self.sets.get(key, set())
        before = len(members_set)
        members_set.difference_update(members)
        return before - len(members_set)

    def scard(self, key):
        return len(self.sets.get(key, ()))

    def expire(self, key, seconds):
        return key in self.values or key in self.sets

    def pipeline(self):
        return FakePipeline(self)

    def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    def ping(self):
        return True


class InMemoryQValueRepository:
    """Q-table kept in a dict, keyed by (state_hash, action_key)."""

    def __init__(self):
        self.values: Dict[Tuple[str, str], float] = {}
        self.visits: Dict[Tuple[str, str], int] = {}

    def list_for_state(self, state_hash: str) -> List[Tuple[str, float]]:
        rows = [(action, q) for (s, action), q in self.values.items() if s == state_hash]
        return sorted(rows, key=lambda row: row[1], reverse=True)

    def get(self, state_hash: str, action_key: str) -> Optional[float]:
        return self.values.get((state_hash, action_key))

    def max_q(self, state_hash: str) -> Optional[float]:
        values = [q for (s, _), q in self.values.items() if s == state_hash]
        return max(values) if values else None

    def save(self, state_hash: str, action_key: str, q_value: float) -> None:
        key = (state_hash, action_key)
        self.values[key] = q_value
        self.visits[key] = self.visits.get(key, 0) + 1

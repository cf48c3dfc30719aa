"""Publication of experiment outcome events."""
import json
import redis
from datetime import datetime
from typing import Any, Dict, Optional

from pricelab.middleware.logging import get_logger

logger = get_logger()


def build_outcome_event(experiment, results: Optional[Dict[str, Any]], timestamp: Optional[datetime] = None) -> Dict[str, Any]:
    """Event sent when an experiment completes."""
    results = results or {}
    return {
        "experimentId": experiment.id,
        "userId": str(experiment.user_id),
        "outcome": "conclusive" if results.get("significant_difference") else "inconclusive",
        "winningStrategyId": results.get("leading_strategy"),
        "timestamp": (timestamp or datetime.utcnow()).isoformat(),
    }


class OutcomePublisher:
    """Publishes outcome events to a Redis pub/sub channel for notification and reporting."""

    def __init__(self, redis_client: redis.Redis, channel: str = "learning-events"):
        self.redis = redis_client
        self.channel = channel

    def publish(self, event: Dict[str, Any]) -> int:
        """
        Publish an event.

        Returns:
            Number of subscribers that received it
        """
        receivers = self.redis.publish(self.channel, json.dumps(event))
        logger.info(
            "outcome_event_published",
            experiment_id=event.get("experimentId"),
            outcome=event.get("outcome"),
            receivers=receivers
        )
        return receivers

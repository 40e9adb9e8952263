"""Durable alert rule storage."""

import logging

from storepulse.core.errors import InvalidAlertRuleError
from storepulse.core.models import AlertRule
from storepulse.core.ports import CachePort

logger = logging.getLogger(__name__)

RULES_KEY = "monitoring.alert_rules"


class CacheRuleStorage:
    """RuleStoragePort that keeps rules in a cache without expiry.

    Pair it with a durable cache such as SQLiteCache so rules outlive the
    process. Invalid stored rules are skipped with a warning.
    """

    def __init__(self, cache: CachePort, key: str = RULES_KEY) -> None:
        self._cache = cache
        self._key = key

    def load(self) -> list[AlertRule]:
        stored = self._cache.get(self._key, [])
        if not isinstance(stored, list):
            return []
        rules = []
        for item in stored:
            try:
                rules.append(AlertRule.from_dict(item))
            except InvalidAlertRuleError as exc:
                logger.warning("Skipping stored alert rule", extra={"error": str(exc)})
        return rules

    def save(self, rules: list[AlertRule]) -> None:
        self._cache.put(self._key, [rule.to_dict() for rule in rules], None)

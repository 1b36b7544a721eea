# =======================================================================================
# vehicle_gate/utils/metrics.py - In-process counters
# =======================================================================================
import logging
from collections import Counter
from typing import Dict

from ..models.enums import MetricName

logger = logging.getLogger(__name__)


class GateMetrics:
    """Best-effort counters for one antenna instance."""

    def __init__(self, instance: str = "DEFAULT"):
        self.instance = instance
        self._counters: Counter = Counter()

    def increment(self, name: MetricName) -> None:
        """Bump a counter. Never raises."""
        try:
            self._counters[name] += 1
            logger.debug("[METRIC] %s_%s=%d", name, self.instance, self._counters[name])
        except Exception:
            logger.exception("Failed to update counter %s", name)

    def get(self, name: MetricName) -> int:
        return self._counters[name]

    def snapshot(self) -> Dict[str, int]:
        return {f"{name}_{self.instance}": value for name, value in self._counters.items()}

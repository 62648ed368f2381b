"""
Pacing: randomized inter-page delays, retry backoff and scroll durations.

The engine never calls ``random`` directly; it asks a ``Pacer``.  Tests
swap in a pacer with zero delays.
"""

import random
from typing import Optional

from .run_config import CrawlerRunConfig


class Pacer:
    """Delay/jitter provider driven by ``CrawlerRunConfig``."""

    def __init__(self, config: Optional[CrawlerRunConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or CrawlerRunConfig()
        self._rng = rng or random.Random()

    def page_delay(self) -> float:
        """Seconds to wait before the next navigation."""
        low = self.config.min_page_delay
        high = max(low, self.config.max_page_delay)
        return self._rng.uniform(low, high)

    def backoff(self, attempt: int) -> float:
        """Wait after failed attempt ``attempt`` (0-indexed): base * 2**attempt."""
        return self.config.backoff_base_seconds * (2 ** attempt)

    def scroll_duration_ms(self) -> int:
        low = self.config.scroll_min_ms
        high = max(low, self.config.scroll_max_ms)
        return self._rng.randint(low, high)


class NoDelayPacer(Pacer):
    """Pacer without page delays or scroll time; backoff schedule unchanged."""

    def page_delay(self) -> float:
        return 0.0

    def scroll_duration_ms(self) -> int:
        return 0

"""Page budget for one entity resolution run."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class CrawlBudget:
    """Soft/hard page ceilings and the count of fetched pages.

    ``pages_crawled`` only ever grows. Past the soft limit only
    high-priority URLs are admitted; at the hard limit nothing is.
    """

    soft_limit: int = 20
    hard_limit: int = 40
    pages_crawled: int = 0

    def __post_init__(self) -> None:
        if self.soft_limit > self.hard_limit:
            raise ValueError("soft_limit must not exceed hard_limit")

    @property
    def ok(self) -> bool:
        return self.pages_crawled < self.soft_limit

    @property
    def soft(self) -> bool:
        return self.soft_limit <= self.pages_crawled < self.hard_limit

    @property
    def hard(self) -> bool:
        return self.pages_crawled >= self.hard_limit

    @property
    def remaining(self) -> int:
        return max(0, self.hard_limit - self.pages_crawled)

    def admits(self, high_priority: bool = False) -> bool:
        """Whether a new URL may enter the queue or be fetched now."""
        if self.hard:
            return False
        if self.soft:
            return high_priority
        return True

    def record_fetch(self) -> int:
        self.pages_crawled += 1
        return self.pages_crawled

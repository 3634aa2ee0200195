"""
Collectors -- trending sound fetching layer.

Each trend source implements BaseSoundCollector.
Use the factory functions to get the right collector for your config.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class TrendPoint:
    """One point of a sound's short popularity series."""
    time: int
    value: float


@dataclass
class TrendingSound:
    """Source-agnostic trending sound record returned by all collectors."""
    clip_id: str                        # platform's own sound identifier
    title: str
    author: Optional[str] = None
    cover: Optional[str] = None
    link: Optional[str] = None
    rank: int = 0
    rank_diff: Optional[int] = None
    rank_diff_type: Optional[int] = None
    trend: List[TrendPoint] = field(default_factory=list)
    duration: Optional[int] = None
    country_code: Optional[str] = None

    @property
    def trend_values(self) -> List[float]:
        return [point.value for point in self.trend]


class BaseSoundCollector(ABC):
    """Abstract base for all trending sound collectors."""

    @abstractmethod
    def collect_sounds(self, country_code: str) -> List[TrendingSound]:
        """Fetch the current trending sounds for a region.

        An empty list means "no data this round", never an error.
        """
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Verify the source is reachable."""
        ...

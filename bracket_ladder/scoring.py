from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import math
import re

import numpy as np

# Standard double-elimination placement buckets.
BASE_POINTS: tuple[tuple[int, int], ...] = (
    (1, 2000),
    (2, 1600),
    (3, 1300),
    (4, 1100),
    (5, 900),
    (7, 750),
    (9, 600),
    (13, 450),
    (17, 325),
    (25, 225),
    (33, 150),
    (49, 90),
    (65, 50),
)

TIER_MULTIPLIERS: dict[str, float] = {
    "P": 1.0,
    "S": 0.85,
    "SUPERMAJOR": 0.85,
    "SUPER MAJOR": 0.85,
    "MAJOR": 0.75,
    "A": 0.6,
    "B": 0.45,
    "C": 0.3,
}
DEFAULT_TIER_MULTIPLIER = 0.5

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_tier(tier: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", str(tier or "")).strip().upper()


@dataclass(frozen=True)
class ScoringModel:
    """Placement points scaled by an event tier multiplier.

    A placement between two breakpoints scores as the next worse breakpoint
    (10th scores like 9th). Unknown tiers use `default_multiplier`.
    """

    base_points: tuple[tuple[int, int], ...] = BASE_POINTS
    multipliers: Mapping[str, float] = field(default_factory=lambda: dict(TIER_MULTIPLIERS))
    default_multiplier: float = DEFAULT_TIER_MULTIPLIER

    def __post_init__(self) -> None:
        table = sorted(self.base_points)
        object.__setattr__(self, "base_points", tuple(table))
        object.__setattr__(
            self,
            "multipliers",
            {normalize_tier(tier): float(value) for tier, value in self.multipliers.items()},
        )
        object.__setattr__(
            self, "_breakpoints", np.array([placement for placement, _ in table], dtype=np.int64)
        )

    @classmethod
    def with_overrides(
        cls,
        multipliers: Mapping[str, float] | None = None,
        default_multiplier: float | None = None,
    ) -> "ScoringModel":
        merged = dict(TIER_MULTIPLIERS)
        merged.update(multipliers or {})
        return cls(
            multipliers=merged,
            default_multiplier=(
                DEFAULT_TIER_MULTIPLIER if default_multiplier is None else default_multiplier
            ),
        )

    def base_points_for(self, placement: int) -> int:
        idx = int(np.searchsorted(self._breakpoints, placement, side="right")) - 1
        if idx < 0:
            return 0
        return self.base_points[idx][1]

    def tier_multiplier(self, tier: str | None) -> float:
        return self.multipliers.get(normalize_tier(tier), self.default_multiplier)

    def points(self, placement: int, tier: str | None) -> int:
        raw = self.base_points_for(placement) * self.tier_multiplier(tier)
        return int(math.floor(raw + 0.5))

"""Tamanho atual do bilau e metas de visual (colaborador que recebe o crescimento confirmado)."""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from bilau.payments.gateway.base import DEFAULT_GOALS
from bilau.payments.models import DEFAULT_SIZE_CM, CampaignStats

logger = logging.getLogger(__name__)

GOAL_NAMES = {
    "aquatico": "Bilau Aquático",
    "cowboy": "Bilau Cowboy",
    "ballz": "Bilau Ball Z",
    "saiyajin": "Bilau Super Saiyajin",
}


class SizeTracker(Protocol):
    def grow(self, centimeters: int) -> Any: ...


@dataclass(frozen=True)
class Goal:
    slug: str
    name: str
    size: int


def goals_from_config(config: Any) -> list[Goal]:
    """Metas do GET /config (slug -> tamanho em cm), ordenadas por tamanho."""
    raw = config.get("goals") if isinstance(config, dict) else None
    if not isinstance(raw, dict) or not raw:
        raw = DEFAULT_GOALS
    goals = []
    for slug, size in raw.items():
        try:
            size = int(size)
        except (TypeError, ValueError):
            logger.warning("Meta %s com tamanho inválido: %r", slug, size)
            continue
        goals.append(Goal(slug=slug, name=GOAL_NAMES.get(slug, slug.title()), size=size))
    return sorted(goals, key=lambda g: g.size)


class CampaignTracker:
    """Mantém o tamanho em memória; cresce apenas com pagamentos confirmados."""

    def __init__(self, size: int = DEFAULT_SIZE_CM, goals: list[Goal] | None = None):
        self.current_size = size
        self.goals = goals if goals is not None else goals_from_config(None)

    def apply_stats(self, stats: CampaignStats) -> None:
        self.current_size = stats.current_size

    def apply_config(self, config: Any) -> None:
        self.goals = goals_from_config(config)

    def grow(self, centimeters: int) -> list[Goal]:
        """Soma o crescimento e devolve as metas desbloqueadas por ele."""
        before = self.current_size
        self.current_size += centimeters
        reached = [g for g in self.goals if before < g.size <= self.current_size]
        logger.info("Bilau cresceu %d cm (%d -> %d)", centimeters, before, self.current_size)
        return reached

    def unlocked(self) -> list[Goal]:
        return [g for g in self.goals if g.size <= self.current_size]

    def next_goal(self) -> Goal | None:
        return next((g for g in self.goals if g.size > self.current_size), None)

    def progress(self) -> float:
        """Percentual (0-100) até a próxima meta; 100 se todas foram atingidas."""
        goal = self.next_goal()
        if goal is None:
            return 100.0
        previous = max((g.size for g in self.unlocked()), default=0)
        span = goal.size - previous
        if span <= 0:
            return 100.0
        return min(100.0, (self.current_size - previous) * 100.0 / span)

from __future__ import annotations

import logging

from config import Settings
from services.identity import IdentityHub
from services.senior_store import BRAIN_GAMES_FIELD, HEALTH_QUIZ_FIELD, SeniorStore
from services.toggle_setting import ToggleSetting, ToggleSpec

logger = logging.getLogger(__name__)

BRAIN_GAMES = ToggleSpec(
    name="brain_games",
    field=BRAIN_GAMES_FIELD,
    first_load_default=True,
    logged_out_value=False,
)

HEALTH_QUIZ = ToggleSpec(
    name="health_quiz",
    field=HEALTH_QUIZ_FIELD,
    first_load_default=True,
    logged_out_value=True,
)


class FeatureToggles:
    """The senior's feature flags, loaded and reset together."""

    def __init__(self, brain_games: ToggleSetting, health_quiz: ToggleSetting):
        self.brain_games = brain_games
        self.health_quiz = health_quiz

    def all(self) -> list[ToggleSetting]:
        return [self.brain_games, self.health_quiz]

    def get(self, name: str) -> ToggleSetting | None:
        key = (name or "").strip().lower().replace("-", "_")
        for toggle in self.all():
            if toggle.name == key:
                return toggle
        return None

    async def initialize(self) -> None:
        for toggle in self.all():
            await toggle.initialize()

    async def settle(self) -> None:
        for toggle in self.all():
            await toggle.settle()

    async def close(self) -> None:
        for toggle in self.all():
            await toggle.close()


def build_feature_toggles(store: SeniorStore, identity: IdentityHub, settings: Settings) -> FeatureToggles:
    brain_spec = BRAIN_GAMES.with_policy(settings.BRAIN_GAMES_WRITE_POLICY)
    quiz_spec = HEALTH_QUIZ.with_policy(settings.HEALTH_QUIZ_WRITE_POLICY)
    logger.info(
        "Feature toggles: %s=%s, %s=%s",
        brain_spec.name,
        brain_spec.policy.value,
        quiz_spec.name,
        quiz_spec.policy.value,
    )
    return FeatureToggles(
        brain_games=ToggleSetting(brain_spec, store, identity),
        health_quiz=ToggleSetting(quiz_spec, store, identity),
    )

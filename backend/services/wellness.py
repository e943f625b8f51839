from __future__ import annotations

from services.senior_store import CheckInRecord

# Scores are normalised to 0..1. Legacy answer values from older app versions
# are kept so historical months still score.
MOOD_SCORES = {
    "happy": 1.0,
    "neutral": 0.7,
    "down": 0.4,
    "very_sad": 0.1,
    "sad": 0.4,
}
SLEEP_SCORES = {
    "great": 1.0,
    "good": 0.8,
    "okay": 0.5,
    "poorly": 0.2,
    "average": 0.5,
    "poor": 0.2,
}
ENERGY_SCORES = {
    "great": 1.0,
    "good": 0.8,
    "high": 1.0,
    "medium": 0.6,
    "low": 0.4,
    "very_tired": 0.1,
}
UNKNOWN_SCORE = 0.5


def _score(value: str | None, table: dict[str, float]) -> float | None:
    if value is None:
        return None
    return table.get(str(value).strip().lower(), UNKNOWN_SCORE)


def mood_score(mood: str | None) -> float | None:
    return _score(mood, MOOD_SCORES)


def sleep_score(sleep: str | None) -> float | None:
    return _score(sleep, SLEEP_SCORES)


def energy_score(energy: str | None) -> float | None:
    return _score(energy, ENERGY_SCORES)


def medication_taken(medication: str | None) -> bool:
    if medication is None:
        return False
    return medication.strip().lower() in {"yes", "true", "1"}


def wellness_index(record: CheckInRecord) -> float:
    """Mean of the available mood/sleep/energy scores; 0.0 when none answered."""
    scores = [
        s
        for s in (mood_score(record.mood), sleep_score(record.sleep), energy_score(record.energy))
        if s is not None
    ]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)

from __future__ import annotations

import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings  # noqa: E402
from services.feature_flags import BRAIN_GAMES, HEALTH_QUIZ, build_feature_toggles  # noqa: E402
from services.identity import IdentityHub  # noqa: E402
from services.remote_store import HttpSeniorStore, build_senior_store  # noqa: E402
from services.senior_store import SqlSeniorStore  # noqa: E402
from services.toggle_setting import WritePolicy  # noqa: E402


def test_production_security_gate_rejects_default_secret_values():
    settings = Settings(
        ENVIRONMENT="production",
        SECRET_KEY="change-me-in-production",
        AUTH_COOKIE_SECURE=False,
    )
    with pytest.raises(RuntimeError):
        settings.validate_security_configuration()


def test_production_security_gate_accepts_hardened_settings():
    settings = Settings(
        ENVIRONMENT="production",
        SECRET_KEY="a-long-random-secret-value",
        AUTH_COOKIE_SECURE=True,
        AUTH_COOKIE_SAMESITE="strict",
    )
    settings.validate_security_configuration()


def test_development_allows_default_secret():
    Settings(ENVIRONMENT="development").validate_security_configuration()


def test_http_backend_requires_url():
    settings = Settings(SENIOR_STORE_BACKEND="http", SENIOR_STORE_URL="")
    with pytest.raises(RuntimeError, match="SENIOR_STORE_URL"):
        settings.validate_security_configuration()


def test_unknown_write_policy_is_rejected():
    settings = Settings(HEALTH_QUIZ_WRITE_POLICY="fastest")
    with pytest.raises(RuntimeError, match="HEALTH_QUIZ_WRITE_POLICY"):
        settings.validate_security_configuration()


def test_build_senior_store_selects_backend():
    http_store = build_senior_store(Settings(SENIOR_STORE_BACKEND="HTTP", SENIOR_STORE_URL="http://store.test"))
    assert isinstance(http_store, HttpSeniorStore)
    assert isinstance(build_senior_store(Settings(SENIOR_STORE_BACKEND="sql")), SqlSeniorStore)


def test_feature_toggles_follow_configured_policies():
    settings = Settings(BRAIN_GAMES_WRITE_POLICY="coalesce", HEALTH_QUIZ_WRITE_POLICY="Serial")
    store = build_senior_store(Settings(SENIOR_STORE_BACKEND="sql"))
    toggles = build_feature_toggles(store, IdentityHub(), settings)

    assert toggles.get("brain-games").spec.policy is WritePolicy.COALESCE
    assert toggles.get("health_quiz").spec.policy is WritePolicy.SERIAL
    assert toggles.get("unknown") is None
    assert BRAIN_GAMES.first_load_default is True and BRAIN_GAMES.logged_out_value is False
    assert HEALTH_QUIZ.first_load_default is True and HEALTH_QUIZ.logged_out_value is True

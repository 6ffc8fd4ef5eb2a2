"""
Tests for configuration parsing, the error taxonomy and the retry helper.

  a) CFPConfig.from_env reads CFP_* variables; bad values raise ValueError
  b) model weight parsing
  c) with_retry retries retryable errors only, with the configured backoff
  d) secrets are redacted from log strings
"""

import os
import sys
import sqlite3

import pytest

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _root)

from cfp.config import CFPConfig, DEFAULT_MODELS, parse_model_weights
from cfp.errors import (
    CrawlerError,
    RetryConfig,
    RunInProgressError,
    WikidataError,
    sanitize_for_logging,
    with_retry,
)

CFP_VARS = (
    "CFP_TARGET", "CFP_DRY_RUN", "CFP_MAX_PROPERTIES", "CFP_MAX_QIDS", "CFP_BATCH_SIZE",
    "CFP_CATCH_MISSED", "CFP_MODELS", "CFP_MODEL_WEIGHTS", "CFP_QUERY_TIMEOUT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in CFP_VARS:
        monkeypatch.setenv(name, "")
    return monkeypatch


def test_defaults(clean_env):
    config = CFPConfig.from_env()
    assert config.target == "test"
    assert config.dry_run is False
    assert config.max_properties == 10
    assert config.max_qids == 5
    assert config.batch_size == 5
    assert config.catch_missed is True
    assert config.models == DEFAULT_MODELS
    assert config.model_weights == {}


def test_from_env(clean_env):
    clean_env.setenv("CFP_TARGET", "production")
    clean_env.setenv("CFP_DRY_RUN", "true")
    clean_env.setenv("CFP_BATCH_SIZE", "2")
    clean_env.setenv("CFP_MODELS", "a/one, b/two")
    clean_env.setenv("CFP_MODEL_WEIGHTS", "a/one=2,b/two=0.5")
    config = CFPConfig.from_env()
    assert config.target == "production"
    assert config.dry_run is True
    assert config.batch_size == 2
    assert config.models == ["a/one", "b/two"]
    assert config.model_weights == {"a/one": 2.0, "b/two": 0.5}
    assert config.to_dict()["target"] == "production"


def test_invalid_values(clean_env):
    clean_env.setenv("CFP_BATCH_SIZE", "zero")
    with pytest.raises(ValueError):
        CFPConfig.from_env()
    clean_env.setenv("CFP_BATCH_SIZE", "")
    clean_env.setenv("CFP_TARGET", "staging")
    with pytest.raises(ValueError):
        CFPConfig.from_env()
    with pytest.raises(ValueError):
        parse_model_weights("a/one")
    with pytest.raises(ValueError):
        parse_model_weights("a/one=-1")


def test_error_defaults():
    assert RunInProgressError("busy").status == 409
    err = WikidataError("nope", code="WIKIDATA_AUTH_FAILED", status=401)
    assert err.to_dict() == {"error": "nope", "code": "WIKIDATA_AUTH_FAILED", "status": 401, "details": {}}
    assert str(err) == "nope"


def test_with_retry_retries_retryable():
    sleeps = []
    calls = []
    config = RetryConfig(max_attempts=3, base_delay=1.0, backoff_factor=2.0, max_delay=1.5)

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise CrawlerError("blip", retryable=True)
        return "ok"

    assert with_retry(flaky, config, sleep=sleeps.append) == "ok"
    assert sleeps == [1.0, 1.5]


def test_with_retry_stops_on_permanent_error():
    calls = []

    def broken():
        calls.append(1)
        raise CrawlerError("404", retryable=False)

    with pytest.raises(CrawlerError):
        with_retry(broken, RetryConfig(3, 0.1, 2.0, 1.0), sleep=lambda s: None)
    assert len(calls) == 1


def test_with_retry_database_lock():
    calls = []

    def locked():
        calls.append(1)
        raise sqlite3.OperationalError("database is locked")

    with pytest.raises(sqlite3.OperationalError):
        with_retry(locked, RetryConfig(2, 0.1, 2.0, 1.0), sleep=lambda s: None)
    assert len(calls) == 2


def test_sanitize_for_logging():
    text = "Authorization: Bearer abc.def api_key=sk-123456789012345 lgpassword=hunter2"
    clean = sanitize_for_logging(text)
    assert "abc.def" not in clean
    assert "sk-123456789012345" not in clean
    assert "hunter2" not in clean

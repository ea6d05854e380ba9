"""API key resolution: env vs admin file preference, fallback flip, masking."""

from __future__ import annotations

import json
import sys
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest

from ingestion.api_key import ApiKeyProvider


@pytest.fixture(autouse=True)
def _no_process_key(monkeypatch):
    monkeypatch.delenv("RIOT_API_KEY", raising=False)


def _key_file(tmp_path: Path, payload) -> str:
    path = tmp_path / "riot-apikey.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_env_key_preferred_by_default(tmp_path) -> None:
    provider = ApiKeyProvider(env_key="RGAPI-env", key_file=_key_file(tmp_path, {"riotApiKey": "RGAPI-file"}))
    assert provider.current_api_key() == "RGAPI-env"


def test_file_key_when_preferred(tmp_path) -> None:
    provider = ApiKeyProvider(
        env_key="RGAPI-env", key_file=_key_file(tmp_path, {"riotApiKey": "RGAPI-file"}), prefer_env=False
    )
    assert provider.current_api_key() == "RGAPI-file"


def test_falls_back_to_other_source(tmp_path) -> None:
    provider = ApiKeyProvider(env_key=None, key_file=_key_file(tmp_path, {"riotApiKey": " RGAPI-file "}))
    assert provider.current_api_key() == "RGAPI-file"


def test_fallback_flip(tmp_path) -> None:
    provider = ApiKeyProvider(env_key="RGAPI-env", key_file=_key_file(tmp_path, {"riotApiKey": "RGAPI-file"}))
    provider.use_fallback_source()
    assert provider.prefer_env is False
    assert provider.current_api_key() == "RGAPI-file"
    provider.use_fallback_source()
    assert provider.current_api_key() == "RGAPI-env"


def test_process_env_is_read_when_no_explicit_key(monkeypatch) -> None:
    monkeypatch.setenv("RIOT_API_KEY", "RGAPI-process")
    assert ApiKeyProvider().current_api_key() == "RGAPI-process"


@pytest.mark.parametrize(
    "content",
    ["not json", json.dumps(["RGAPI-x"]), json.dumps({"riotApiKey": ""}), json.dumps({"other": "x"})],
)
def test_unusable_file_yields_none(tmp_path, content) -> None:
    path = tmp_path / "riot-apikey.json"
    path.write_text(content, encoding="utf-8")
    provider = ApiKeyProvider(env_key=None, key_file=str(path), prefer_env=False)
    assert provider.current_api_key() is None


def test_missing_file_and_env_yield_none(tmp_path) -> None:
    provider = ApiKeyProvider(key_file=str(tmp_path / "absent.json"))
    assert provider.current_api_key() is None


def test_describe_masks_key() -> None:
    provider = ApiKeyProvider()
    assert provider.describe("RGAPI-1234567890") == "RGAPI-12..."
    assert provider.describe("short") == "***"
    assert provider.describe(None) == "<none>"

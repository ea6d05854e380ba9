"""
Tests for the collector CLI: version, masked config, exit codes, JSON summaries.
Runs tools/collector.py in a subprocess against a temp SQLite file; no network.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

# Repo root (parent of backend)
_repo_root = Path(__file__).resolve().parent.parent.parent
_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))


def _run_cli(tmp_path: Path, *args: str, api_key: str | None = None) -> tuple[int, str, str]:
    """Run tools/collector.py; return (returncode, stdout, stderr)."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("RIOT_")}
    env.update(
        {
            "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}",
            "RIOT_API_KEY_FILE": str(tmp_path / "admin" / "riot-apikey.json"),
            "RIOT_CONTROL_DIR": str(tmp_path / "cron"),
            "LOG_LEVEL": "WARNING",
        }
    )
    if api_key is not None:
        env["RIOT_API_KEY"] = api_key
    result = subprocess.run(
        [sys.executable, str(_repo_root / "tools" / "collector.py"), *args],
        cwd=str(_repo_root),
        capture_output=True,
        text=True,
        timeout=60,
        env=env,
    )
    return result.returncode, result.stdout or "", result.stderr or ""


def test_version_flag(tmp_path: Path) -> None:
    code, out, err = _run_cli(tmp_path, "--version")
    assert code == 0, f"stderr: {err}"
    assert out.strip() == (_repo_root / "VERSION").read_text(encoding="utf-8").strip()


def test_show_config_masks_key(tmp_path: Path) -> None:
    code, out, err = _run_cli(tmp_path, "show-config", api_key="RGAPI-1234-very-secret")
    assert code == 0, f"stderr: {err}"
    payload = json.loads(out)
    assert payload["riot_api_key"] == "RGAPI-12..."
    assert "very-secret" not in out
    assert payload["database_url"].endswith("cli.db")


def test_collect_once_without_key_exits_nonzero(tmp_path: Path) -> None:
    code, out, err = _run_cli(tmp_path, "collect-once")
    assert code == 1, f"stderr: {err}"
    summary = json.loads(out)
    assert summary["error"] == "RIOT_API_KEY not configured"
    assert summary["collected"] == 0


def test_queue_stats_on_empty_database(tmp_path: Path) -> None:
    code, out, err = _run_cli(tmp_path, "queue-stats")
    assert code == 0, f"stderr: {err}"
    assert json.loads(out) == {
        "crawl_queue": {},
        "crawl_queue_total": 0,
        "participants_missing_rank": 0,
        "participants_missing_role": 0,
    }


def test_rebuild_on_empty_database(tmp_path: Path) -> None:
    code, out, err = _run_cli(tmp_path, "rebuild-matchups", "--patch", "14.3", "--rank-tier", "gold")
    assert code == 0, f"stderr: {err}"
    assert out.strip() == "14.3,GOLD,0,0"


def test_unknown_command_is_usage_error(tmp_path: Path) -> None:
    code, _, err = _run_cli(tmp_path, "no-such-command")
    assert code == 2
    assert "invalid choice" in err

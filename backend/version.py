"""
Collector version, read from the repo-root VERSION file.
Shown by ``tools/collector.py --version`` and the dev stub app.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_VERSION = "0.0.0"


def _version_file_path() -> Path:
    # backend/version.py -> repo root
    return Path(__file__).resolve().parent.parent / "VERSION"


def get_version() -> str:
    """First line of VERSION, or DEFAULT_VERSION when the file is missing or empty."""
    path = _version_file_path()
    if not path.is_file():
        return DEFAULT_VERSION
    try:
        raw = path.read_text(encoding="utf-8").strip()
    except OSError:
        return DEFAULT_VERSION
    return raw.splitlines()[0].strip() if raw else DEFAULT_VERSION

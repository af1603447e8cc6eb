"""Load the default subscription list from the optional config file."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click

APP_NAME = "pimbulk"
CONFIG_FILENAME = "config.json"


@dataclass(frozen=True)
class ConfigResult:
    """Subscriptions read from the config file, plus a warning when degraded."""

    subscriptions: tuple[str, ...]
    path: Path
    warning: Optional[str] = None


def default_config_path() -> Path:
    return Path(click.get_app_dir(APP_NAME)) / CONFIG_FILENAME


def load_default_subscriptions(path: Optional[os.PathLike] = None) -> ConfigResult:
    """
    Read ``{"subscriptions": [{"id": "..."}]}`` from *path*.

    Never raises for a missing or malformed file: the result carries an
    empty subscription list and a warning instead.  Entries without a
    string ``id`` are ignored.
    """
    config_path = Path(path) if path is not None else default_config_path()

    if not config_path.is_file():
        return _degraded(config_path, f"Config file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as fh:
            document = json.load(fh)
    except OSError as exc:
        return _degraded(config_path, f"Could not read {config_path}: {exc}")
    except json.JSONDecodeError as exc:
        return _degraded(config_path, f"Invalid JSON in {config_path}: {exc}")

    entries = document.get("subscriptions") if isinstance(document, dict) else None
    if not isinstance(entries, list):
        return _degraded(config_path, f"{config_path} has no 'subscriptions' list")

    subscriptions = []
    for entry in entries:
        sub_id = entry.get("id") if isinstance(entry, dict) else None
        if isinstance(sub_id, str) and sub_id.strip():
            subscriptions.append(sub_id.strip())

    if not subscriptions:
        return ConfigResult(
            subscriptions=(),
            path=config_path,
            warning=f"No subscriptions listed in {config_path}",
        )
    return ConfigResult(subscriptions=tuple(subscriptions), path=config_path)


def _degraded(path: Path, warning: str) -> ConfigResult:
    return ConfigResult(subscriptions=(), path=path, warning=warning)

"""
User configuration persistence.

Stores settings like the store file and default import mode in a JSON file.
"""

import json
from pathlib import Path
from typing import TypedDict

from ..rules.identity import ImportMode


class Config(TypedDict, total=False):
    """User configuration."""
    store_path: str  # JSON file holding sheets and assignments
    import_mode: str  # MERGE or CREATE_ONLY
    log_level: str  # DEBUG, INFO, WARNING, ...
    conflict_policy: str  # ask, suffix, overwrite


CONFLICT_POLICIES = ("ask", "suffix", "overwrite")

DEFAULT_CONFIG: Config = {
    "store_path": "fichas.json",
    "import_mode": "MERGE",
    "log_level": "INFO",
    "conflict_policy": "ask",  # Never overwrite a sheet without a human saying so
}


def get_config_path(base_dir: Path | str = ".") -> Path:
    """Get path to config file."""
    return Path(base_dir) / ".fichas_config.json"


def load_config(base_dir: Path | str = ".") -> Config:
    """Load config from file, or return defaults if not found."""
    path = get_config_path(base_dir)

    if not path.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        if not isinstance(saved, dict):
            return DEFAULT_CONFIG.copy()
        # Merge with defaults to handle missing keys
        config = DEFAULT_CONFIG.copy()
        config.update(saved)
        return config
    except (json.JSONDecodeError, IOError):
        return DEFAULT_CONFIG.copy()


def save_config(config: Config, base_dir: Path | str = ".") -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(base_dir)

    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        return False


def set_conflict_policy(policy: str, base_dir: Path | str = ".") -> None:
    """Save conflict policy preference."""
    if policy not in CONFLICT_POLICIES:
        raise ValueError(f"Unknown conflict policy: {policy!r}")
    config = load_config(base_dir)
    config["conflict_policy"] = policy
    save_config(config, base_dir)


def set_import_mode(mode: str, base_dir: Path | str = ".") -> None:
    """Save default import mode."""
    config = load_config(base_dir)
    config["import_mode"] = ImportMode(mode).value
    save_config(config, base_dir)

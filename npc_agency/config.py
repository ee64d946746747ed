"""Settings: environment (.env) plus {data}/config.json merged over defaults.

Environment:
  DATA_DIR    data directory (default ./data)
  LOG_LEVEL   logging level name (default INFO)

config.json keys:
  role_capabilities      {role: [tags]}, merged role-by-role over the
                         built-in table; tags are added, never removed
  hours_per_tick         simulated hours per tick for the launcher
  persist_timed_actions  write timed-action state after each change
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from npc_agency.capabilities import CapabilityRegistry

ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = ROOT / "data"

logger = logging.getLogger(__name__)

_CONFIG_DEFAULTS: dict[str, Any] = {
    "role_capabilities": {},
    "hours_per_tick": 24,
    "persist_timed_actions": True,
}


def load_env() -> None:
    load_dotenv(ROOT / ".env")


def resolve_data_dir(data_dir: Path | None = None) -> Path:
    return data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))


def configure_logging(level: str | None = None) -> None:
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config: dict[str, Any] = {
        "role_capabilities": {},
        "hours_per_tick": _CONFIG_DEFAULTS["hours_per_tick"],
        "persist_timed_actions": _CONFIG_DEFAULTS["persist_timed_actions"],
    }
    path = _config_path(data_dir)
    if path.is_file():
        try:
            stored = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable %s: %s", path, e)
            stored = {}
        if not isinstance(stored, dict):
            stored = {}
        if isinstance(stored.get("role_capabilities"), dict):
            for role, caps in stored["role_capabilities"].items():
                if isinstance(caps, list):
                    config["role_capabilities"][role] = list(caps)
        if "hours_per_tick" in stored:
            config["hours_per_tick"] = stored["hours_per_tick"]
        if "persist_timed_actions" in stored:
            config["persist_timed_actions"] = bool(stored["persist_timed_actions"])
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = get_config(data_dir)
    if "role_capabilities" in fields:
        config["role_capabilities"].update(fields["role_capabilities"])
    if "hours_per_tick" in fields:
        config["hours_per_tick"] = fields["hours_per_tick"]
    if "persist_timed_actions" in fields:
        config["persist_timed_actions"] = bool(fields["persist_timed_actions"])
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(config, indent=2))
    return config


def build_registry(config: dict[str, Any]) -> CapabilityRegistry:
    """Default registry extended with the configured role capabilities."""
    registry = CapabilityRegistry.default()
    for role, caps in config.get("role_capabilities", {}).items():
        registry.add_role_capabilities(role, caps)
    return registry

"""
Controller configuration.

Values come from three layers, later layers winning:

1. built-in defaults
2. an optional YAML file (``TEAMCTL_CONFIG`` or an explicit path)
3. environment variables

Environment variables:
    TEAMCTL_HOME: base directory holding ``teams/`` (default: ~/.claude)
    TEAMCTL_PORT: control API port on 127.0.0.1 (default: 43779)
    TEAMCTL_TOKEN: bearer token for the control API (default: random per start)
    TEAMCTL_ALLOW_QUERY_TOKEN: accept ``?token=`` on requests (default: false)
    TEAMCTL_DEFAULT_TEAM: team used when /session/init omits teamName
    TEAMCTL_CLAUDE_BINARY: teammate binary used when /session/init omits it
    TEAMCTL_POLL_INTERVAL: controller mailbox poll period in seconds (default: 0.5)
    TEAMCTL_LOG_LEVEL: logging level for the API server (default: INFO)
    TEAMCTL_APPROVAL_POLICY: "auto" approves every request; "allowlist" approves
        plans and permission requests for TEAMCTL_ALLOWED_TOOLS (default: auto)
    TEAMCTL_ALLOWED_TOOLS: comma-separated tool names for the allowlist policy
    TEAMCTL_APPROVAL_FALLBACK: "deny" or "defer" for tools off the allowlist
        (default: deny)
"""

import os
import logging
import secrets
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from teamctl.core.paths import get_base_dir

logger = logging.getLogger(__name__)

DEFAULT_PORT = 43779

# Desktop app origin is the last entry.
DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost",
    "http://127.0.0.1",
    "https://localhost",
    "https://127.0.0.1",
    "tauri://localhost",
)

APPROVAL_POLICIES = ("auto", "allowlist")
APPROVAL_FALLBACKS = ("deny", "defer")


@dataclass
class ControllerConfig:
    """Runtime settings for the controller and its control API."""
    base_dir: Path = field(default_factory=get_base_dir)
    port: int = DEFAULT_PORT
    token: str = ""
    allow_query_token: bool = False
    default_team: str = "teamctl"
    claude_binary: str = "claude"
    poll_interval: float = 0.5
    log_level: str = "INFO"
    allowed_origins: tuple = DEFAULT_ALLOWED_ORIGINS
    approval_policy: str = "auto"
    allowed_tools: tuple = ()
    approval_fallback: str = "deny"

    def __post_init__(self):
        if self.approval_policy not in APPROVAL_POLICIES:
            raise ValueError(f"approval_policy must be one of {APPROVAL_POLICIES}, "
                             f"got {self.approval_policy!r}")
        if self.approval_fallback not in APPROVAL_FALLBACKS:
            raise ValueError(f"approval_fallback must be one of {APPROVAL_FALLBACKS}, "
                             f"got {self.approval_fallback!r}")
        self.allowed_tools = tuple(self.allowed_tools or ())
        self.base_dir = Path(self.base_dir).expanduser()
        if not self.token:
            self.token = secrets.token_urlsafe(32)
            logger.info("No TEAMCTL_TOKEN set; generated a control API token for this run")


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes")


def _env_list(name: str) -> tuple:
    return tuple(item.strip() for item in os.environ[name].split(",") if item.strip())


def _load_yaml(config_path: str) -> Dict[str, Any]:
    """Read a YAML mapping, returning {} on any problem."""
    if not os.path.exists(config_path):
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return {}

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except Exception as e:
        logger.error(f"Failed to load config {config_path}: {e}, using defaults")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Config {config_path} is not a mapping, using defaults")
        return {}
    return data


def load_config(config_path: Optional[str] = None) -> ControllerConfig:
    """Build a ControllerConfig from defaults, YAML and environment."""
    values: Dict[str, Any] = {}

    config_path = config_path or os.getenv("TEAMCTL_CONFIG")
    if config_path:
        known = {f.name for f in fields(ControllerConfig)}
        for key, value in _load_yaml(config_path).items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown config key: {key}")

    if os.getenv("TEAMCTL_HOME"):
        values["base_dir"] = os.environ["TEAMCTL_HOME"]
    if os.getenv("TEAMCTL_PORT"):
        values["port"] = int(os.environ["TEAMCTL_PORT"])
    if os.getenv("TEAMCTL_TOKEN"):
        values["token"] = os.environ["TEAMCTL_TOKEN"]
    allow_query = _env_bool("TEAMCTL_ALLOW_QUERY_TOKEN")
    if allow_query is not None:
        values["allow_query_token"] = allow_query
    if os.getenv("TEAMCTL_DEFAULT_TEAM"):
        values["default_team"] = os.environ["TEAMCTL_DEFAULT_TEAM"]
    if os.getenv("TEAMCTL_CLAUDE_BINARY"):
        values["claude_binary"] = os.environ["TEAMCTL_CLAUDE_BINARY"]
    if os.getenv("TEAMCTL_POLL_INTERVAL"):
        values["poll_interval"] = float(os.environ["TEAMCTL_POLL_INTERVAL"])
    if os.getenv("TEAMCTL_LOG_LEVEL"):
        values["log_level"] = os.environ["TEAMCTL_LOG_LEVEL"].upper()
    if os.getenv("TEAMCTL_APPROVAL_POLICY"):
        values["approval_policy"] = os.environ["TEAMCTL_APPROVAL_POLICY"].strip().lower()
    if os.getenv("TEAMCTL_ALLOWED_TOOLS"):
        values["allowed_tools"] = _env_list("TEAMCTL_ALLOWED_TOOLS")
    if os.getenv("TEAMCTL_APPROVAL_FALLBACK"):
        values["approval_fallback"] = os.environ["TEAMCTL_APPROVAL_FALLBACK"].strip().lower()

    if "allowed_origins" in values:
        values["allowed_origins"] = tuple(values["allowed_origins"])

    config = ControllerConfig(**values)
    logger.info(f"teamctl configuration loaded: base_dir={config.base_dir}, port={config.port}, "
                f"query_token={config.allow_query_token}, approval_policy={config.approval_policy}")
    return config

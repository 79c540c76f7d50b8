"""
Filesystem layout for teams and mailboxes.

Layout under the base directory::

    teams/<team>/config.json          team document
    teams/<team>/config.json.lock     lock file for the team document
    teams/<team>/inboxes/<agent>.json mailbox
    teams/<team>/inboxes/<agent>.json.lock

Team and agent names are validated before they are joined into a path.
This is the only guard against path traversal through user supplied names.
"""

import os
import re
from pathlib import Path
from typing import Optional, Union

from teamctl.core.errors import InvalidNameError

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
NAME_RULE = "name must be 1-64 chars of [A-Za-z0-9_-]"

PathLike = Union[str, Path]


def is_valid_name(value: str) -> bool:
    """Return True if ``value`` is 1-64 characters of ``[A-Za-z0-9_-]``."""
    return isinstance(value, str) and NAME_PATTERN.fullmatch(value) is not None


def validate_name(value: str) -> str:
    """Return ``value`` unchanged or raise InvalidNameError."""
    if not is_valid_name(value):
        raise InvalidNameError(NAME_RULE)
    return value


def get_base_dir(base_dir: Optional[PathLike] = None) -> Path:
    """Resolve the per-user base directory.

    Precedence: explicit argument, ``TEAMCTL_HOME``, ``~/.claude``.
    """
    if base_dir is not None:
        return Path(base_dir).expanduser()
    env_home = os.getenv("TEAMCTL_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".claude"


def teams_dir(base_dir: Optional[PathLike] = None) -> Path:
    return get_base_dir(base_dir) / "teams"


def team_dir(team_name: str, base_dir: Optional[PathLike] = None) -> Path:
    return teams_dir(base_dir) / validate_name(team_name)


def team_config_path(team_name: str, base_dir: Optional[PathLike] = None) -> Path:
    return team_dir(team_name, base_dir) / "config.json"


def inboxes_dir(team_name: str, base_dir: Optional[PathLike] = None) -> Path:
    return team_dir(team_name, base_dir) / "inboxes"


def inbox_path(team_name: str, agent_name: str, base_dir: Optional[PathLike] = None) -> Path:
    validate_name(agent_name)
    return inboxes_dir(team_name, base_dir) / f"{agent_name}.json"


def lock_path_for(path: Path) -> Path:
    """Sibling lock file: ``agent.json`` -> ``agent.json.lock``."""
    return path.with_name(path.name + ".lock")


def temp_path_for(path: Path) -> Path:
    """Sibling temp file used for atomic replace: ``agent.json.tmp``."""
    return path.with_name(path.name + ".tmp")

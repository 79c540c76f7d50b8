"""
Capability probe for the teammate binary.

A binary can host teammates only if ``--version`` succeeds and ``--help``
mentions both the ``--team-name`` and ``--teammate-mode`` flags.
"""

import logging
import subprocess

from teamctl.core.errors import CapabilityError

logger = logging.getLogger(__name__)

REQUIRED_FLAGS = ("--team-name", "--teammate-mode")
PROBE_TIMEOUT = 30.0


def _run(binary: str, flag: str, timeout: float) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            [binary, flag],
            capture_output=True,
            text=True,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise CapabilityError(f"Failed to execute {binary} {flag}: {e}") from e


def verify_teammate_support(binary: str, timeout: float = PROBE_TIMEOUT) -> str:
    """
    Check that ``binary`` supports agent teams.

    Returns:
        The trimmed ``--version`` output.

    Raises:
        CapabilityError: If the binary cannot run or lacks the team flags.
    """
    version = _run(binary, "--version", timeout)
    if version.returncode != 0:
        raise CapabilityError(
            f"{binary} --version failed (status={version.returncode}): {version.stderr.strip()}"
        )

    help_output = _run(binary, "--help", timeout)
    text = f"{help_output.stdout}\n{help_output.stderr}"
    missing = [flag for flag in REQUIRED_FLAGS if flag not in text]
    if missing:
        raise CapabilityError(
            f"{binary} does not appear to support teammate agent teams "
            f"(missing {'/'.join(missing)} in --help). Upgrade the CLI or disable teammate mode."
        )

    logger.info(f"Teammate binary {binary} supports agent teams ({version.stdout.strip()})")
    return version.stdout.strip()

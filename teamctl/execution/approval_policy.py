"""
Approval policy for teammate plan and permission requests.

The controller's poller hands every ``plan_approval_request`` and
``permission_request`` it drains to an ApprovalPolicy. The policy answers
APPROVE or DENY (the poller writes the matching response into the
requester's mailbox) or DEFER (the request is fanned out to subscribers like
any other message, leaving the answer to a human).

The default policy approves everything. The server picks its policy from
configuration through ``build_policy``.
"""

import logging
import threading
from enum import Enum
from typing import Dict, Optional

from teamctl.communication.message_types import (
    APPROVAL_REQUESTS,
    PermissionRequest,
    PlanApprovalRequest,
    PollEvent,
)

logger = logging.getLogger(__name__)


class ApprovalDecision(Enum):
    """What the poller does with an approval request."""
    APPROVE = "approve"
    DENY = "deny"
    DEFER = "defer"


class ApprovalPolicy:
    """Base policy. Subclasses override ``decide``."""

    def decide(self, event: PollEvent) -> ApprovalDecision:
        raise NotImplementedError

    @staticmethod
    def is_approval_request(event: PollEvent) -> bool:
        return isinstance(event.parsed, APPROVAL_REQUESTS)


class AutoApprovePolicy(ApprovalPolicy):
    """Approve every plan and permission request."""

    def decide(self, event: PollEvent) -> ApprovalDecision:
        return ApprovalDecision.APPROVE


class ToolAllowListPolicy(ApprovalPolicy):
    """
    Approve plans and permission requests for allow-listed tools.

    Requests for any other tool get ``fallback`` (DEFER by default, so a
    human can answer them through a subscriber). Per-tool overrides can be
    changed at runtime; thread-safe.
    """

    def __init__(self, allowed_tools=(), fallback: ApprovalDecision = ApprovalDecision.DEFER,
                 approve_plans: bool = True):
        self.fallback = fallback
        self.approve_plans = approve_plans
        self._rules: Dict[str, ApprovalDecision] = {
            tool: ApprovalDecision.APPROVE for tool in allowed_tools
        }
        self._lock = threading.Lock()

    def set_rule(self, tool_name: str, decision: Optional[ApprovalDecision]) -> None:
        """Set (or with None, clear) the decision for one tool."""
        with self._lock:
            if decision is None:
                self._rules.pop(tool_name, None)
            else:
                self._rules[tool_name] = decision

    def decide(self, event: PollEvent) -> ApprovalDecision:
        request = event.parsed
        if isinstance(request, PlanApprovalRequest):
            return ApprovalDecision.APPROVE if self.approve_plans else self.fallback
        if isinstance(request, PermissionRequest):
            with self._lock:
                decision = self._rules.get(request.tool_name, self.fallback)
            logger.debug(f"Permission for {request.tool_name} from {request.sender}: {decision.value}")
            return decision
        return ApprovalDecision.DEFER


def build_policy(name: str = "auto", allowed_tools=(), fallback: str = "deny") -> ApprovalPolicy:
    """
    Policy selected by configuration name.

    ``"auto"`` approves everything. ``"allowlist"`` approves plans and the
    listed tools and answers other tools with ``fallback`` (``"deny"`` or
    ``"defer"``).

    Raises:
        ValueError: For an unknown policy or fallback name.
    """
    if name == "auto":
        return AutoApprovePolicy()
    if name == "allowlist":
        decision = ApprovalDecision(fallback)
        if decision is ApprovalDecision.APPROVE:
            raise ValueError("allowlist fallback must be 'deny' or 'defer'")
        return ToolAllowListPolicy(allowed_tools, fallback=decision)
    raise ValueError(f"unknown approval policy: {name}")

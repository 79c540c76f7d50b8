"""
Execution layer for teamctl.

Components:
- process_supervisor: PTY-backed teammate processes
- capability_probe: checks that a teammate binary supports agent teams
- approval_policy: answers teammate plan and permission requests
"""

from .approval_policy import (
    ApprovalDecision,
    ApprovalPolicy,
    AutoApprovePolicy,
    ToolAllowListPolicy,
    build_policy,
)
from .capability_probe import verify_teammate_support
from .process_supervisor import ProcessSupervisor, SpawnAgentOptions

__all__ = [
    'ApprovalDecision',
    'ApprovalPolicy',
    'AutoApprovePolicy',
    'ToolAllowListPolicy',
    'build_policy',
    'verify_teammate_support',
    'ProcessSupervisor',
    'SpawnAgentOptions'
]

"""
Team controller: one team's poller, teammates and the active-session slot.
"""

from .session import SessionSlot
from .team_controller import AgentStatus, TeamController, normalize_sender

__all__ = [
    'AgentStatus',
    'SessionSlot',
    'TeamController',
    'normalize_sender'
]

"""
teamctl - controller for multi-agent coding teams.

Spawns teammate agent processes, exchanges messages with them through
file-backed mailboxes and exposes the whole team through a local HTTP API.
"""

__version__ = "0.3.0"

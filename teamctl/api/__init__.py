"""
teamctl control API

FastAPI application exposing the team controller to the desktop UI on the
loopback interface: session lifecycle, teammate management, messaging and a
per-agent WebSocket stream.
"""

__version__ = "0.3.0"

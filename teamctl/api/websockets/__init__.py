"""WebSocket endpoints for live teammate traffic."""

"""Control API routers: session lifecycle, teammates and broadcast."""

"""Team membership registry."""

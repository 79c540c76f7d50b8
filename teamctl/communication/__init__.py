"""Mailbox storage, message types and subscriber fan-out."""

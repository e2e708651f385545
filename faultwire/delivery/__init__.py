"""Payload serialization and transport."""

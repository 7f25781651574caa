"""Pydantic models for the payloads exchanged with external services."""

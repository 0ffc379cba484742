"""Core utilities shared by the API layer."""

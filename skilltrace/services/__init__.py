"""Service layer: backend client and analysis job lifecycle."""

"""External service integrations (storage, email)."""

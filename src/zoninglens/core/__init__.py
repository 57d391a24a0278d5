"""Configuration, shared enums and request-scoped logging."""

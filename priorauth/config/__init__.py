"""Configuration, logging and run-scoped context."""

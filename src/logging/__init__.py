"""Structured logging: formatters, handlers and run context."""

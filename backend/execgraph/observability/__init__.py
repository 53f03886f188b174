"""Logging, request context and tracing setup."""

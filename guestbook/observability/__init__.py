"""Logging helpers.

structlog JSON output plus a request-id middleware that binds request context
for every log line emitted while a request is being handled.
"""

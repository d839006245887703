"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set here, before anything imports
``app.core.config``, so the global settings pick them up.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("RATE_LIMIT_STORE", "memory")
os.environ.setdefault("RATE_LIMIT_TIERS", "100/60,10000/86400")
os.environ.setdefault("RATE_LIMIT_SECRET", "test-secret-123")
# TestClient talks plain HTTP; Secure cookies would never be echoed back
os.environ.setdefault("RATE_LIMIT_COOKIE_SECURE", "false")
os.environ.setdefault("LOG_FORMAT", "json")

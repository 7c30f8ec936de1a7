"""
Root pytest configuration.
Forces the in-memory test database before any application module is imported.
"""
import os

# Set testing environment before importing app
os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("NOTIFICATIONS_ENABLED", "True")

"""Pytest configuration and fixtures."""

# local
from roomchat.tests.accessories import bind_host  # noqa: F401  pytest fixture

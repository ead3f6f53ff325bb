"""Shared utilities for the agent core."""

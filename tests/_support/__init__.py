"""Shared helpers for the stagecoach test suite."""

"""Core catalog, sync and matching logic."""

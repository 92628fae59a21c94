"""Utility helpers for prompt_registry."""

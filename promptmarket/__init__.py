"""Prompt marketplace backend."""

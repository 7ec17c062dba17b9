"""Shared credential bundle management."""

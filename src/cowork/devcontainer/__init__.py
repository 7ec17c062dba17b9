"""Devcontainer descriptors and their reconciliation."""

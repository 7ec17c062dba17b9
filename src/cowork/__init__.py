"""Cowork - isolated development sessions using devcontainers and full clones."""

__version__ = "0.1.0"

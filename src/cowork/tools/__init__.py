"""Wrappers around the external tools cowork drives."""

"""Layered configuration storage."""

"""Project identity and session registry."""

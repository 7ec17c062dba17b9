"""Terminal multiplexer support inside session containers."""

"""Chat command handlers — the out-of-band side of the login handshake."""

"""Chat-identity login — one-time codes exchanged for a web session."""

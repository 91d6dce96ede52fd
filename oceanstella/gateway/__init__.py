"""Ocean Stella - HTTP gateway (request middleware)."""

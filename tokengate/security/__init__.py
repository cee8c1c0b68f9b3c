"""Request protection — rate limiting."""

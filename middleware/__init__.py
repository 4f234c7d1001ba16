"""Request middleware: caller identity and rate limiting."""

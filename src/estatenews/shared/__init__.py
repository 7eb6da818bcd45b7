"""Shared infrastructure: errors, retry policy and external service clients."""

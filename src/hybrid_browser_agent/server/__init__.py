"""Control-plane HTTP service."""

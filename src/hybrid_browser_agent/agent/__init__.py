"""Agent action vocabulary, loop and per-session service."""

"""Browser lifecycle and execution adapters."""

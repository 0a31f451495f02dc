"""Skill registry and built-in skills."""

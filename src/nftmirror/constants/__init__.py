"""Module-level constants."""

"""Projection state machine: pure transitions and invariant checks."""

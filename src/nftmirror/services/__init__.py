"""External collaborators and the projector service."""

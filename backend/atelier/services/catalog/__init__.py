"""Read-only access to the measurement template catalog."""

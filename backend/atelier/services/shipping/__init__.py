"""Read-only access to shipping settings."""

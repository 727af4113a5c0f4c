"""Customer account directory backed by the accounts table."""

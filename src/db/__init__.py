"""Database engines and table definitions."""

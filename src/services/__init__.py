"""Pipeline entry points."""

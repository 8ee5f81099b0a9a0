"""Domain enums and schemas."""

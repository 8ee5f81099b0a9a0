"""Readers and external lookup clients."""

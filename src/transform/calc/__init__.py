"""Fund-level metric calculations."""

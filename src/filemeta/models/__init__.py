"""Data models for filemeta."""

"""Data models — events, stamps and membership records."""

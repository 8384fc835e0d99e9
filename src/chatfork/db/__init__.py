"""Database layer for chatfork."""

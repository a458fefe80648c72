"""Database layer for the governance core."""

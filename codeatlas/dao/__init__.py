"""Data-access layer: one DAO per table, no commits."""

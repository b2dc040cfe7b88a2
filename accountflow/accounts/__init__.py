"""User and link persistence."""

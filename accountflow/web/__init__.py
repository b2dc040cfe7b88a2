"""Account Flow web interface (FastAPI)."""

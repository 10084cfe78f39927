"""HTTP layer of the MapyChat proxy (FastAPI)."""

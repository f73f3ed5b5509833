"""HTTP surface for the trainer (FastAPI)."""

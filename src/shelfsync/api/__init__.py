"""Local HTTP bridge (FastAPI) over the sync engine."""

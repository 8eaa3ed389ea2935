"""HTTP API for building sprites as background jobs (FastAPI + uvicorn)."""

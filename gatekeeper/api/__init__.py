"""HTTP API - FastAPI surface called by the Discord command dispatcher."""

"""Couche HTTP (FastAPI)."""

"""Servidor de render remoto (FastAPI)."""

from .app import create_app, safe_job_id

__all__ = ["create_app", "safe_job_id"]

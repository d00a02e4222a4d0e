"""
Name: Portal ASGI Entrypoint (gsign.main)

Responsibilities:
  - Re-export the FastAPI app for ASGI servers and tooling
  - Keep the import path `gsign.main:app` stable for uvicorn

Notes/Constraints:
  - No configuration or IO should live here
"""

from gsign.api.main import app

__all__ = ["app"]

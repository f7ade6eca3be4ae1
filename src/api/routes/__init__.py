"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import orders, reports, trackings, upload_logs

__all__ = [
    "orders",
    "reports",
    "trackings",
    "upload_logs",
]

"""
core/errors.py -- Exceptions that carry a ready-made HTTP response.

StepError lets code below the route layer (dependencies, helpers) stop a
request with an exact status and JSON body. api/main.py registers the
handler that renders it; nothing here depends on FastAPI.
"""

from __future__ import annotations


class StepError(Exception):
    def __init__(self, status_code: int, body: dict) -> None:
        super().__init__(body.get("message") or body.get("error") or str(status_code))
        self.status_code = status_code
        self.body = body

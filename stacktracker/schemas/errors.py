"""
schemas/errors.py — Body of every Stack Tracker error response

Business Rules:
- error carries the HTTPException detail, or the first validation message
- detail is only set for 422s: one {loc, msg, type} entry per failed field
- request_id echoes the caller's x-request-id header, empty when absent

Called by: main.py (HTTP and request-validation exception handlers)
Depends on: pydantic
"""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    status_code: int
    request_id: str = ""
    detail: list | None = None

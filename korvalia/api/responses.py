# korvalia/api/responses.py
from typing import Any, List, Optional

from fastapi import Request

from korvalia.schemas.base_schema import ApiResponse, Meta


def _trace_id(request: Optional[Request]) -> str:
    return getattr(request.state, "trace_id", "") if request else ""


def ok(
    data: Any,
    message: str,
    request: Optional[Request] = None,
    meta: Optional[Meta] = None,
) -> ApiResponse:
    """Wrap a successful response in the standard ApiResponse envelope."""
    return ApiResponse(
        success=True,
        data=data,
        meta=meta,
        message=message,
        errors=None,
        trace_id=_trace_id(request),
    )


def fail(message: str, errors: List[str], request: Optional[Request] = None) -> dict:
    """Error envelope as a JSON-ready dict, for exception handlers."""
    return ApiResponse(
        success=False,
        data=None,
        message=message,
        errors=errors,
        trace_id=_trace_id(request),
    ).model_dump()

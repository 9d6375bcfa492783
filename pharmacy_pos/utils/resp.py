# FILE: pharmacy_pos/utils/resp.py
from __future__ import annotations

from typing import Any, Optional
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from pharmacy_pos.schemas.common import ApiResponse, ApiError


def err(msg: str, status_code: int = 400, kind: Optional[str] = None, **extra: Any) -> JSONResponse:
    """Error envelope: {"status": false, "error": {"msg", "kind", ...}}."""
    payload = ApiResponse(status=False, error=ApiError(msg=msg, kind=kind, **extra))
    return JSONResponse(status_code=status_code,
                        content=jsonable_encoder(payload, exclude_none=True))

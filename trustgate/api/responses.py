"""
Response envelope helpers.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import InternalError, TrustGateError, UpstreamError, ValidationError
from ..identity.provider import ProviderUnavailableError

logger = logging.getLogger(__name__)


def envelope(
    code: int,
    http_status: int,
    message: str,
    payload: Any = None,
    meta: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    failed = http_status >= 400
    body: Dict[str, Any] = {
        "error": failed,
        "success": not failed,
        "code": code,
        "httpStatus": http_status,
        "message": message,
    }
    if payload is not None:
        body["payload"] = payload
    if meta is not None:
        body["meta"] = meta
    return jsonable_encoder(body)


def api_response(
    code: int,
    message: str,
    payload: Any = None,
    meta: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=envelope(code, status_code, message, payload=payload, meta=meta),
    )


def error_response(exc: TrustGateError) -> JSONResponse:
    return api_response(
        exc.code,
        exc.message,
        payload=exc.payload,
        meta=exc.meta,
        status_code=exc.http_status,
    )


def require_fields(
    body: BaseModel,
    fields: Iterable[str],
    code: int,
    message: str = "Missing required fields",
) -> None:
    """
    Reject a request body with missing or empty fields.

    Raises:
        ValidationError: listing the required and received fields.
    """
    fields = list(fields)
    missing = [name for name in fields if not getattr(body, name, None)]
    if missing:
        raise ValidationError(
            message,
            code=code,
            payload={"required": fields, "received": sorted(body.model_fields_set)},
        )


@contextmanager
def server_errors(code: int, message: str):
    """
    Give failures inside a route the route's 5xxx code.

    Domain errors pass through; upstream failures are re-coded; anything
    unexpected is logged and replaced by a generic InternalError so internal
    details never reach the client.
    """
    try:
        yield
    except UpstreamError as e:
        e.code = code
        raise
    except ProviderUnavailableError as e:
        raise UpstreamError(message, code=code) from e
    except TrustGateError:
        raise
    except Exception as e:
        logger.error(f"{message}: {e}", exc_info=True)
        raise InternalError(message, code=code) from e

"""Exception handler middleware for structured error responses."""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from ..exceptions import DocpilotException

logger = logging.getLogger(__name__)


async def docpilot_exception_handler(request: Request, exc: DocpilotException) -> JSONResponse:
    """
    Convert a :class:`DocpilotException` into a ``{error, message, details}`` response.

    Client errors are logged at warning level, everything else at error.
    """
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"DocpilotException: {exc.error_code.value}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )

"""Error taxonomy for the profile service.

Only fatal conditions are exceptions: invalid input, a geocoding miss and
unclassified internal failures. Source adapter problems are values
(see ``data.base.Failure``) and never reach this module.
"""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_500_INTERNAL_SERVER_ERROR


class ProfileError(Exception):
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class InvalidQuery(ProfileError):
    status_code = HTTP_400_BAD_REQUEST
    code = "INVALID_PARAMETERS"


class AddressNotFound(ProfileError):
    status_code = 422  # constant name differs across starlette releases
    code = "ADDRESS_NOT_FOUND"


class InternalError(ProfileError):
    def __init__(self):
        super().__init__("Internal server error")


def error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


async def profile_error_handler(request: Request, exc: ProfileError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Query parameters are the only request input; malformed ones are a 400 here.
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
    message = "Invalid parameter(s): " + ", ".join(f for f in fields if f) if fields else "Invalid parameters"
    return JSONResponse(status_code=HTTP_400_BAD_REQUEST, content=error_body("INVALID_PARAMETERS", message))

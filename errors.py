from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    status_code = 400


class NotFoundError(StoreError):
    status_code = 404


class ConflictError(StoreError):
    status_code = 409


class InsufficientStockError(ConflictError):
    pass


class RateNotFoundError(ConflictError):
    pass


class CapacityExceededError(ConflictError):
    pass


class ExternalServiceError(StoreError):
    """Storage, blob or PDF backend rejected the call."""


async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(StoreError, store_error_handler)

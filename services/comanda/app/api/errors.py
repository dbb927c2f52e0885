from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from shared.core import get_logger
from app.domain.errors import AppError

logger = get_logger(__name__)

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.warning(
        f"Request error: {exc.message}",
        extra={'extra_fields': {
            'method': request.method,
            'path': request.url.path,
            'status_code': exc.status_code,
            'error': type(exc).__name__,
            'entity': exc.entity,
            'entity_id': exc.entity_id,
        }}
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)

"""
FastAPI Entry Point for the Clipflow media pipeline
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clipflow.config.base import settings
from clipflow.routers.clips import router as clips_router
from clipflow.routers.uploads import router as uploads_router
from clipflow.services.upload import get_s3_service, get_session_store
from clipflow.utils.errors import ClipflowError
from clipflow.utils.logger import get_logger, setup_logging

setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
logger = get_logger(__name__)


async def clipflow_error_handler(request: Request, exc: ClipflowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error_code} - {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.error_code} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(include_debug: Optional[bool] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Resumable chunked uploads and ffmpeg clip extraction",
        version=settings.VERSION
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.DEBUG else [],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        max_age=86400
    )
    app.add_exception_handler(ClipflowError, clipflow_error_handler)

    app.include_router(uploads_router)
    app.include_router(clips_router)

    include_debug = settings.DEBUG if include_debug is None else include_debug
    if include_debug:
        from clipflow.routers.debug import router as debug_router
        app.include_router(debug_router)
        logger.info("Debug router included (development mode)")

    @app.get("/")
    def root():
        return {"message": settings.APP_NAME, "version": settings.VERSION}

    @app.get("/health")
    def health_check():
        return {
            "status": "healthy",
            "services": {
                "s3": "available" if get_s3_service().enabled else "unavailable",
                "session_store": type(get_session_store()).__name__,
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)

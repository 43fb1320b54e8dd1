import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from reelrender.api import render
from reelrender.config import get_settings
from reelrender.constants.error_codes import get_error_spec
from reelrender.exceptions import ReelRenderError
from reelrender.schemas.envelope import ErrorInfo
from reelrender.services.font_resolver import FontResolver

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    if settings.font_download_enabled:
        await asyncio.to_thread(FontResolver().preload)
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


@app.exception_handler(ReelRenderError)
async def reelrender_exception_handler(request: Request, exc: ReelRenderError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_error_info().model_dump(exclude_none=True)},
    )


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    spec = get_error_spec("INTERNAL_ERROR")
    error = ErrorInfo(
        code="INTERNAL_ERROR",
        message="Internal server error",
        retryable=spec.get("retryable", False),
        suggested_fix=spec.get("suggested_fix"),
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": error.model_dump(exclude_none=True)},
    )


# Routers
app.include_router(render.router, tags=["render"])


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok", "service": settings.app_name, "version": settings.app_version}


if __name__ == "__main__":
    uvicorn.run("reelrender.main:app", host="0.0.0.0", port=8080)

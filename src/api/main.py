from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from ..core.errors import InvoicePipelineError
from ..core.logging import setup_logging
from ..core.config import settings
from .routers import health, invoice

logger = setup_logging()
app = FastAPI(title=settings.app_name, description="Doppler invoice extraction and ledger merge")


# Missing or malformed multipart uploads end up here
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation failed", path=request.url.path, errors=exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()},
    )


# Pipeline errors not already mapped by a route
@app.exception_handler(InvoicePipelineError)
async def pipeline_exception_handler(request: Request, exc: InvoicePipelineError):
    logger.error(f"Unhandled pipeline error: {str(exc)}", path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": exc.message, "details": exc.details},
    )


# CORS_ORIGINS can be set in .env as comma-separated list
# Example: CORS_ORIGINS=http://localhost:3000,https://your-frontend.com
allowed_origins = [origin.strip() for origin in settings.cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(invoice.router)

logger.info(
    "Invoice ledger API ready",
    env=settings.app_env,
    ledger=f"s3://{settings.s3_bucket}/{settings.ledger_object_key}" if settings.s3_bucket else settings.ledger_local_path,
    recognizer_configured=bool(settings.az_di_endpoint and settings.az_di_api_key),
)

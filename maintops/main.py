"""Main FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from maintops import config
from maintops.database import engine, Base
from maintops.api.routes import router
from maintops.services.errors import (
    ConflictError,
    CoreError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    UnknownKeyError,
)
# Import models to register them with SQLAlchemy Base
from maintops.models.domain import Counter, AssetType, Asset, WorkOrder, WorkOrderNote
from maintops.models.audit import AuditLog

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title="Maintenance Operations Core",
    description="Work order lifecycle, identifier allocation and role-based authorization.",
    version="0.1.0"
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For MVP - restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    UnauthorizedError: 401,
    ForbiddenError: 403,
    NotFoundError: 404,
    UnknownKeyError: 404,
    InvalidTransitionError: 409,
    ConflictError: 409,
}


@app.exception_handler(CoreError)
def core_error_handler(request: Request, exc: CoreError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    if status_code == 409:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.message})


@app.exception_handler(ValueError)
def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


# Include API routes
app.include_router(router, prefix="/api", tags=["Maintenance"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Maintenance Operations Core"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
Main FastAPI application entry point.
"""
import uvicorn
import logging
from typing import Any, Dict, List, Sequence
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from routers import allocation
from service.errors import AllocationError, PersistenceError
from config import settings

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Initialize the FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Assigns coordinators, team members and teaching lecturers to curriculum modules "
                "with expertise matching and proportional, fairness-ordered apportionment.",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Title-cased labels that read better spelled out
FIELD_LABELS = {
    "Ids": "IDs",
    "Id": "ID",
    "Blok": "Block",
}


def field_label(loc: Sequence[Any]) -> str:
    """'body -> lecturers -> 0 -> role_assignments' becomes 'Lecturers -> 0 -> Role Assignments'."""
    parts = list(loc)
    if len(parts) > 1 and parts[0] in ("body", "query"):
        parts = parts[1:]
    words = " -> ".join(str(p) for p in parts).replace("_", " ").title().split(" ")
    return " ".join(FIELD_LABELS.get(word, word) for word in words)


def friendly_message(label: str, error: Dict[str, Any]) -> str:
    error_type = error.get("type", "")
    msg = error.get("msg", "Invalid value")
    if error_type == "missing":
        return f"{label} is required."
    if error_type == "literal_error":
        return f"{label} has an unsupported value. {msg}"
    if error_type.startswith("int_"):
        return f"{label} must be a whole number."
    if error_type.startswith("list_") or error_type.startswith("dict_"):
        return f"{label} has the wrong shape. {msg}"
    return f"{label}: {msg}"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert FastAPI validation errors to human-friendly format.

    Expected format:
    {
        "errors": {
            "Field Name": ["Error message 1", "Error message 2"]
        }
    }
    """
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        label = field_label(error.get("loc", []))
        errors.setdefault(label, []).append(friendly_message(label, error))

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"errors": errors}
    )


@app.exception_handler(AllocationError)
async def allocation_exception_handler(request: Request, exc: AllocationError):
    """Report store and allocation failures that escape an endpoint."""
    logger.error(f"{type(exc).__name__}: {exc}")
    code = status.HTTP_503_SERVICE_UNAVAILABLE if isinstance(exc, PersistenceError) else status.HTTP_400_BAD_REQUEST
    return JSONResponse(
        status_code=code,
        content={"success": False, "message": str(exc)}
    )


app.include_router(allocation.router, prefix="/api/v1", tags=["allocation"])


@app.get("/", tags=["health"])
async def root():
    """Root endpoint - API health check."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "healthy",
        "docs": "/docs"
    }


@app.get("/health", tags=["health"])
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload
    )

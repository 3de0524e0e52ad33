from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
import logging

from config.logging import setup_logging
from config.env import settings
from database import init_db
from routers import ai_generation, flashcards
from services.errors import ErrorCode, ServiceError

# Set up logging
setup_logging()
logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}

app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version
)

@app.on_event("startup")
async def startup_event():
    """Create tables and storage triggers on startup."""
    try:
        logger.info("Initializing database...")
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize server: {str(e)}")
        raise

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=NO_STORE)

@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    error = ServiceError(
        ErrorCode.VALIDATION_ERROR,
        "Input validation failed",
        details=[
            {"path": ".".join(str(part) for part in issue["loc"]), "message": issue["msg"], "code": issue["type"]}
            for issue in exc.errors()
        ]
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=NO_STORE)

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error in {request.method} {request.url.path}: {str(exc)}", exc_info=exc)
    error = ServiceError(
        ErrorCode.INTERNAL_ERROR,
        "An unexpected error occurred while processing your request. Please try again later."
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=NO_STORE)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allows all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allows all methods
    allow_headers=["*"],  # Allows all headers
)

# Include routers
app.include_router(ai_generation.router, prefix="/api/ai-generations", tags=["ai-generations"])
app.include_router(flashcards.router, prefix="/api/flashcards", tags=["flashcards"])

@app.get("/")
async def root():
    return {"message": "Welcome to the Flashcards API"}

if __name__ == "__main__":
    logger.info("Starting Flashcards API server")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

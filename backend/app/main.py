from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from starlette.middleware.cors import CORSMiddleware
import os
import logging
import sys

# Configure logging for the entire application at the very beginning
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)
logger.debug("Application startup: Initializing FastAPI application.")

# Load environment variables from .env file, specifying the path
# Assumes .env is in the 'backend' directory
dotenv_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", ".env")
load_dotenv(dotenv_path=dotenv_path)

# Import settings and database session management
from app.core.config import settings
from app.db.session import engine, Base
from app.models import podcast_job  # noqa: F401  registers the table on Base
logger.debug("Main: Imported settings and database session management.")

# Import the API routers
from app.api.v1 import podcast
logger.debug("Main: Imported API routers.")

# --- Database Table Creation ---
def create_tables():
    """
    Creates all database tables based on the SQLAlchemy Base metadata.
    """
    Base.metadata.create_all(bind=engine)

# Create the main FastAPI application instance
app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)
logger.debug(f"Main: FastAPI application instance created with title '{settings.PROJECT_NAME}'.")

# --- Middleware ---
# The settings below are permissive; for production, restrict
# the allowed origins to your specific frontend domain.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.debug("Main: CORS middleware added.")

# Mount static files directory; generated audio is served from here
app.mount("/storage", StaticFiles(directory=settings.STORAGE_PATH), name="storage")
logger.debug(f"Main: Mounted static files directory {settings.STORAGE_PATH} at '/storage'")

# --- Event Handlers ---
@app.on_event("startup")
def on_startup():
    """
    Event handler that runs when the FastAPI application starts.
    Creates the database tables.
    """
    logger.debug("Main: Startup event triggered. Creating database tables.")
    create_tables()

# --- API Routers ---
app.include_router(podcast.router, prefix=f"{settings.API_V1_STR}/podcasts", tags=["Podcasts"])
logger.debug(f"Main: Including podcast router with prefix: {settings.API_V1_STR}/podcasts")

# --- Root Endpoint ---
@app.get("/", tags=["Root"])
def read_root():
    """
    A simple root endpoint for health checks and to welcome users.
    """
    return {"message": f"Welcome to the {settings.PROJECT_NAME}"}

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import OperationalError

from mgnrega_tracker.api.routes import router as api_router
from mgnrega_tracker.core.config import settings
from mgnrega_tracker.core.logging import setup_logging
from mgnrega_tracker.db.database import Base, engine
from mgnrega_tracker.models import dataset  # noqa: F401  registers the tables

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="MGNREGA Performance Tracker API", version="1.0")

# Try to create tables (safe)
try:
    Base.metadata.create_all(bind=engine)
except OperationalError as e:
    logger.warning("Database connection failed, serving in degraded mode: %s", e)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include your API routes
app.include_router(api_router)

# Root route
@app.get("/")
def root():
    return {"message": "MGNREGA tracker backend is running"}

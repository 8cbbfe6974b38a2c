import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.endpoints import redirect, survey
from .config import get_settings
from .database import create_db_and_tables, engine
from .logging_config import configure_logging

settings = get_settings()
configure_logging(level=settings.log_level, json_logs=settings.json_logs)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting...")
    if settings.create_tables_on_startup:
        await create_db_and_tables()
    yield
    logger.info("Application shutting down...")
    await engine.dispose()


app = FastAPI(title="Panel Router", lifespan=lifespan)

logger.info(f"CORS: allowed origins {settings.allowed_origins}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Public start/callback routes first so "/start" is not taken as a survey id
app.include_router(redirect.router, prefix=f"{API_PREFIX}/surveys", tags=["redirect"])
app.include_router(survey.router, prefix=f"{API_PREFIX}/surveys", tags=["surveys"])


@app.get("/")
async def read_root():
    return {"message": "Panel Router is running"}


if __name__ == "__main__":
    import os

    import uvicorn

    APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
    APP_PORT = int(os.getenv("APP_PORT", "8000"))
    RELOAD_APP = os.getenv("RELOAD_APP", "False").lower() == "true"

    uvicorn.run("panel_router.main:app", host=APP_HOST, port=APP_PORT, reload=RELOAD_APP)

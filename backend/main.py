"""
Main FastAPI Application
=======================

Entry point for the HD map frame normalization API server.
"""

import uvicorn
import logging
import sys
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time

from dotenv import load_dotenv
load_dotenv()  # Load .env before settings are read

# Ensure UTF-8 output for console/logging handlers (Windows cp1252 fix)
try:
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')
    sys.stderr.reconfigure(encoding='utf-8', errors='replace')
except AttributeError:
    pass

from api.router import api_router
from config import settings
from config.paths import default_sources
from services.logging_service import init_logging
from services.scene import get_load_coordinator


# Custom colored formatter for better log readability
class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors and emojis for better log readability"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'      # Reset
    }

    EMOJIS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨'
    }

    def format(self, record):
        emoji = self.EMOJIS.get(record.levelname, '')
        color = self.COLORS.get(record.levelname, '')
        reset = self.COLORS['RESET']
        record.levelname = f"{color}{emoji} {record.levelname}{reset}"
        return super().format(record)


def setup_logging():
    """Console logging with visual indicators"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter("%(levelname)s %(name)s: %(message)s"))

    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(console_handler)

    # Silence noisy libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


setup_logging()
try:
    # Add rotating file + ring buffer handlers
    init_logging()
except OSError as e:
    # Do not fail startup if file logging isn't available
    logging.getLogger(__name__).warning(f"⚠️ File logging unavailable: {e}")
    init_logging(log_to_file=False)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="HD Map Frame API",
    description="Coordinate frame normalization for HD vector maps and point clouds",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.on_event("startup")
async def startup_event():
    """Optionally load the default map set"""
    logger.info("🚀 Starting HD Map Frame API Server")
    if not settings.AUTOLOAD_DEFAULT_MAPS:
        logger.info("✅ Server started (autoload disabled)")
        return

    sources = default_sources()
    if not sources:
        logger.warning("⚠️ AUTOLOAD_DEFAULT_MAPS is set but no default map files were found")
        return
    logger.info(f"🗺️ Autoloading default maps: {sources}")
    result = await get_load_coordinator().load(**sources)
    if result.get("success"):
        logger.info(f"✅ Default maps loaded: {result.get('status')}")
    else:
        logger.warning(f"⚠️ Default map autoload failed: {result.get('error')}")


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time header to responses"""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if app.debug else "An unexpected error occurred"
        }
    )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "HD Map Frame API v1.0",
        "status": "running",
        "docs": "/docs",
        "health": "/api/health"
    }


if __name__ == "__main__":
    logger.info("🔧 Starting HD Map Frame API Server in development mode")
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=False,
        log_level="info",
        access_log=True
    )

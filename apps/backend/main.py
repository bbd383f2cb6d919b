from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from contextlib import asynccontextmanager
import os
import logging
import traceback
import uvicorn

load_dotenv()

from app.config import Settings, get_env_presence
from app.jobs_parse import router as jobs_parse_router
from app.rate_limit import limiter, rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from crawler.browser_crawler import get_browser_crawler

logging.basicConfig(level=Settings.log_level())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application lifecycle events."""
    joblens_env = Settings.env()
    logger.info(f"[joblens] env: JOBLENS_ENV={joblens_env}, headless={Settings.headless()}")

    browser = get_browser_crawler()
    browser.install_shutdown_hooks()

    yield

    # Shutdown
    await browser.shutdown()


app = FastAPI(title="JobLens API", version="0.1.0", lifespan=lifespan)

# Add rate limiter state
app.state.limiter = limiter

# Rate limit exceeded handler
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# Error masking middleware
@app.middleware("http")
async def error_masking_middleware(request: Request, call_next):
    """Mask detailed errors in production; show full errors in dev."""
    try:
        response = await call_next(request)
        return response
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unhandled error: {str(e)}", exc_info=True)

        if Settings.is_dev():
            return JSONResponse(
                status_code=500,
                content={
                    "status": "error",
                    "error": str(e),
                    "traceback": traceback.format_exc()
                }
            )
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "error": "An internal error occurred. Please try again later."
            }
        )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(jobs_parse_router)


@app.get("/api/healthz")
async def healthz():
    return {"status": "ok"}


@app.get("/admin/config/env")
async def config_env():
    if not Settings.is_dev():
        raise HTTPException(status_code=403, detail="Admin routes only available in dev mode")
    return {"settings": Settings.as_dict(), "presence": get_env_presence()}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        reload=Settings.is_dev(),
        log_level=Settings.log_level().lower(),
    )

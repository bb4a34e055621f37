import logging
import uvicorn
from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware
from .routers import payments
from .db import init_db
from .config import settings
from .errors import register_error_handlers
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Travel Booking Payments Service")

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    max_age=24 * 60 * 60,
    https_only=settings.is_production,
)
# CORS - the storefront sends the session cookie and the CSRF header
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-CSRF-Token"],
)

register_error_handlers(app)
app.include_router(payments.router)


@app.get("/")
async def root():
    return {"message": "API working"}


@app.on_event("startup")
async def on_startup():
    # init db tables if not using migrations
    await init_db()
    logger.info("Payments service started (env=%s)", settings.env)

if __name__ == "__main__":
    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port, reload=(not settings.is_production))

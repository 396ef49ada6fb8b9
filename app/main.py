from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from app.core.config import settings
from app.core.logger import configure_logging, module_logger
from app.core.request_logging import install_request_logging
from app.api.router import router as api_router
from app.db.session import close_db

configure_logging(
    settings.log_level,
    pretty=settings.LOG_PRETTY and not settings.is_production,
    app_name=settings.APP_NAME,
    env=settings.APP_ENV,
)
_LOG = module_logger("server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    _LOG.info("%s API is starting...", settings.APP_NAME)
    yield
    _LOG.info("%s API is stopping...", settings.APP_NAME)
    close_db()


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
install_request_logging(app)

app.include_router(api_router, prefix="/api")

@app.get("/", include_in_schema=False, response_class=PlainTextResponse)
def landing():
    return f"Welcome to the {settings.APP_NAME} API!"

@app.get("/health")
def health():
    return {"status": "ok"}

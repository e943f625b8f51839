import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from config import settings
from db.database import engine, Base, run_startup_migrations
from auth.routes import router as auth_router
from api.settings import router as settings_router
from api.checkins import router as checkins_router
from api.calendar import router as calendar_router
from services.feature_flags import build_feature_toggles
from services.identity import IdentityHub
from services.remote_store import build_senior_store

logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=settings.LOG_FORMAT)
logger = logging.getLogger(__name__)

settings.validate_security_configuration()

# Create all tables
Base.metadata.create_all(bind=engine)
run_startup_migrations()


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = build_senior_store(settings)
    identity = IdentityHub()
    toggles = build_feature_toggles(store, identity, settings)
    app.state.senior_store = store
    app.state.identity = identity
    app.state.feature_toggles = toggles
    await toggles.initialize()
    logger.info("%s started (store backend: %s)", settings.APP_NAME, settings.store_backend)
    try:
        yield
    finally:
        await toggles.close()
        await store.aclose()


app = FastAPI(title=settings.APP_NAME, version="1.0.0", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.SECURITY_HEADERS_ENABLED:
        return response
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Content-Security-Policy"] = settings.SECURITY_CSP
    return response

# Routers
app.include_router(auth_router, prefix="/api")
app.include_router(settings_router, prefix="/api")
app.include_router(checkins_router, prefix="/api")
app.include_router(calendar_router, prefix="/api")

# Serve frontend static files (in production)
static_dir = Path(__file__).parent / "static"
if static_dir.exists():
    app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")


@app.get("/api/health")
def health_check():
    return {"status": "ok", "app": settings.APP_NAME}

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from cbgwatch.database import init_db
from cbgwatch.config import get_settings
from cbgwatch.api.alerts import router as alerts_router
from cbgwatch.api.groups import router as groups_router
from cbgwatch.api.items import router as items_router
from cbgwatch.api.monitor import router as monitor_router
from cbgwatch.api.settings import router as settings_router
from cbgwatch.api.watchlist import router as watchlist_router
from cbgwatch.services.scheduler import get_monitor

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    await init_db()
    logger.info("Database initialized")

    monitor = get_monitor()
    if settings.monitor_autostart:
        await monitor.start()

    yield

    # Shutdown
    logger.info("Shutting down monitor...")
    await monitor.stop()
    monitor.shutdown()
    await monitor.scanner.price_checker.client.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="cbgwatch API",
    description="Watchlist and target price alerts for the CBG skin marketplace",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST API routers
app.include_router(monitor_router)
app.include_router(alerts_router)
app.include_router(settings_router)
app.include_router(watchlist_router)
app.include_router(groups_router)
app.include_router(items_router)


@app.get("/")
async def root():
    return {
        "message": "cbgwatch API",
        "version": "0.1.0",
        "docs": "/docs",
        "endpoints": {
            "monitor": "/api/monitor",
            "alerts": "/api/alerts",
            "settings": "/api/settings",
            "watchlist": "/api/watchlist",
            "groups": "/api/groups",
            "items": "/api/items",
        }
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import Settings, get_settings
from .core.log import configure_logging
from .api.routes import calendar
from .services.db import TradeRepository, build_supabase_client

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    trades: Optional[TradeRepository] = None,
) -> FastAPI:
    """
    Build the API. Pass `trades` to inject a repository (tests); otherwise
    the Supabase client is created once at startup and owned by the app.
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.trades is None:
            app.state.trades = TradeRepository(build_supabase_client(settings))
            logger.info("Supabase client initialized, calendar reads enabled")
        yield

    app = FastAPI(title="TradeCal Backend", lifespan=lifespan)
    app.state.trades = trades
    # handlers resolve Depends(get_settings); serve the settings this app was built with
    app.dependency_overrides[get_settings] = lambda: settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.FRONTEND_ORIGINS,
        allow_origin_regex=r"^https?://localhost(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(calendar.router)

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/")
    def root():
        return {"message": "TradeCal backend is running"}

    return app


app = create_app()

from fastapi import HTTPException, Request

from ..services.db import TradeRepository


def get_trade_repository(request: Request) -> TradeRepository:
    repo = getattr(request.app.state, "trades", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="database_not_configured")
    return repo

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import RiskBlockedError, WalletError


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RiskBlockedError)
    async def risk_blocked_handler(
        request: Request, exc: RiskBlockedError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": str(exc), "risk_reason": exc.risk_reason},
        )

    @app.exception_handler(WalletError)
    async def wallet_error_handler(request: Request, exc: WalletError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

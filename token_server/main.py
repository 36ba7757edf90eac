"""
Token Server: OAuth 2.0 client_credentials + refresh_token grants, RS256 access tokens.
Port 9000 by default.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from token_server import config
from token_server.access_tokens import AccessTokenIssuer
from token_server.client_registry import build_client_registry
from token_server.grants import TokenService
from token_server.keys import load_or_create_key_pair
from token_server.refresh_tokens import InMemoryRefreshTokenStore
from token_server.token_endpoint import router as token_router
from token_server.well_known import router as well_known_router

logger = logging.getLogger(__name__)


def build_token_service() -> TokenService:
    """Wire the service from configuration: key pair, client registry, in-memory store."""
    private_key, public_key = load_or_create_key_pair(config.SIGNING_KEY_PATH, config.PUBLIC_KEY_PATH)
    issuer = AccessTokenIssuer(
        private_key,
        public_key,
        issuer=config.ISSUER,
        audience=config.API_AUDIENCE,
        expires_in=config.ACCESS_TOKEN_EXPIRES,
        kid=config.SIGNING_KEY_ID,
    )
    return TokenService(
        build_client_registry(config.OAUTH_CLIENTS),
        issuer,
        InMemoryRefreshTokenStore(),
        refresh_token_enabled=config.REFRESH_TOKEN_ENABLED,
        refresh_token_rotation=config.REFRESH_TOKEN_ROTATION,
        refresh_token_expires=config.REFRESH_TOKEN_EXPIRES,
    )


async def _sweep_periodically(service: TokenService, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(service.sweep_expired)
        except Exception:
            logger.exception("Expired refresh token sweep failed")
            continue
        if removed:
            logger.info("Swept %d expired refresh token(s)", removed)


def create_app(
    service: TokenService | None = None,
    *,
    rate_limit_per_minute: int = config.RATE_LIMIT_TOKEN_PER_MINUTE,
    enable_client_generator: bool | None = None,
    sweep_interval: int = config.REFRESH_TOKEN_SWEEP_SECONDS,
) -> FastAPI:
    """Build the app. Without a service, one is wired from configuration at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.token_service is None:
            app.state.token_service = build_token_service()
        app.state.token_verifier = app.state.token_service.issuer
        sweeper = None
        if sweep_interval > 0:
            sweeper = asyncio.create_task(_sweep_periodically(app.state.token_service, sweep_interval))
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper

    app = FastAPI(title="Token Server", version="1.0.0", lifespan=lifespan)
    app.state.token_service = service
    app.state.token_verifier = service.issuer if service is not None else None
    app.state.rate_limit_per_minute = rate_limit_per_minute
    if enable_client_generator is None:
        enable_client_generator = config.ENABLE_CLIENT_GENERATOR
    app.state.enable_client_generator = enable_client_generator
    app.include_router(token_router, tags=["oauth"])
    app.include_router(well_known_router, tags=["well-known"])

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "token_server"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "token_server.main:app",
        host="127.0.0.1",
        port=9000,
        reload=True,
    )

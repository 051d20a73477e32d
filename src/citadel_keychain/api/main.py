# Keychain - FastAPI Backend
#
# Local REST API over the keychain, bound to localhost by default.

import logging
from typing import Optional

from fastapi import FastAPI
import uvicorn

from .. import __version__
from ..core import get_settings
from .keychain_routes import router as keychain_router
from .security import initialize_session_token

logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Citadel Keychain API",
    description="Local password-derived encrypted keychain",
    version=__version__
)

app.include_router(keychain_router)


@app.get("/api/health")
async def health():
    """Liveness probe (no auth, no keychain state)."""
    return {"status": "ok", "version": __version__}


def start_api_server(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Generate a session token and run the API with uvicorn."""
    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    token = initialize_session_token()
    print(f"  Session token: {token}")
    logger.info("Starting keychain API on %s:%d", host, port)

    uvicorn.run(app, host=host, port=port, log_level="info")

"""
API Gateway -- FastAPI application factory.

Creates the FastAPI app with the governance pipeline wired in. This is the
entrypoint for uvicorn:

    uvicorn response_governance.api.gateway:create_app --factory --host 0.0.0.0 --port 8000

Or for development:

    uvicorn response_governance.api.gateway:app --reload

Security:
  - CORS restricted to configured origins (default: localhost only)
  - All external input validated at boundary (routes/respond.py)

Route logic lives in routes/.
"""

import logging
import os
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import GovernanceConfig
from ..enforcement import ContractEnforcementPipeline
from ..llm import TextGenerator, create_client
from .routes import health, respond

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8000",
    "http://localhost:8080",
]


def _get_cors_origins() -> list[str]:
    """Load CORS origins from environment or use safe defaults."""
    origins_env = os.environ.get("CORS_ORIGINS", "")
    if origins_env.strip():
        return [o.strip() for o in origins_env.split(",") if o.strip()]
    return DEFAULT_CORS_ORIGINS


def _default_generator(config: GovernanceConfig) -> TextGenerator | None:
    try:
        return create_client(model=config.rewrite_model, timeout=config.rewrite_timeout)
    except Exception as e:
        logger.warning(f"[Gateway] LLM client init failed (non-fatal, rewrites disabled): {e}")
        return None


def create_app(
    config: GovernanceConfig | None = None,
    generator: TextGenerator | None = None,
) -> FastAPI:
    """
    Application factory -- creates and configures the FastAPI app.

    Args:
        config: Governance settings (loaded from environment if None).
        generator: Text generator used for rewrites (LLM client from env if None).
    """
    if config is None:
        config = GovernanceConfig.from_env()
    if generator is None:
        generator = _default_generator(config)

    application = FastAPI(
        title="Response Governance API",
        description="Intent-contract enforcement and envelope finalization",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=_get_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    application.state.config = config
    application.state.generator = generator
    application.state.pipeline = ContractEnforcementPipeline(generator=generator, config=config)
    application.state.start_time = time.time()

    application.include_router(health.router, tags=["Health"])
    application.include_router(respond.router, prefix="/api/v1", tags=["Respond"])

    logger.info(
        f"[Gateway] API gateway initialized (enforcement={'on' if config.enforcement_enabled else 'off'}, "
        f"pct={config.enforcement_pct:g}, rewrite={'on' if generator is not None else 'off'})"
    )
    return application


app = create_app()

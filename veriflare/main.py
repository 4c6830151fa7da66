"""
Veriflare Attestation Gateway
=============================

FastAPI service driving Flare Data Connector (FDC) Web2Json attestations:

    prepare (verifier) -> submit (FdcHub) -> wait (Relay) -> proof (DA layer)

Also serves the source cache the verifier reads pre-fetched data from.

Run:
    python -m veriflare.main
    veriflare-gateway
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from veriflare import __version__
from veriflare.api import fdc, source_cache
from veriflare.fdc.orchestrator import AttestationEngine
from veriflare.models.responses import HealthResponse
from veriflare.tasks.cache_sweep import cache_sweep_task
from veriflare_canonical.timestamps import canonical_timestamp

logger = logging.getLogger(__name__)


# ============================================================
# Lifespan Context Manager (for background tasks)
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Wires the attestation engine (unless one was injected), starts the source
    cache sweep, and on shutdown cancels the sweep plus every background
    attestation still running.
    """
    from veriflare import config

    print("=" * 80)
    print("🚀 STARTING VERIFLARE ATTESTATION GATEWAY")
    print("=" * 80)
    config.print_config_summary()

    if app.state.engine is None:
        from veriflare.fdc.factory import build_engine

        app.state.engine = build_engine()
        print("✅ Attestation engine initialized from environment")
    else:
        print("✅ Using injected attestation engine")

    engine: AttestationEngine = app.state.engine
    app.state.source_cache = engine.preparer.source_cache

    sweep_task = None
    if app.state.source_cache is not None:
        sweep_task = asyncio.create_task(
            cache_sweep_task(
                app.state.source_cache,
                interval_seconds=config.SOURCE_CACHE_SWEEP_SECONDS,
                store=engine.store,
                record_ttl_seconds=config.ATTESTATION_RECORD_TTL_SECONDS,
            )
        )

    if not engine.preparer.public_base_url:
        print("⚠️  PUBLIC_BACKEND_URL not set - proxied attestations (commits, data) will fail")
        print("   Register one at runtime: POST /api/fdc/set-public-url")
    print("=" * 80 + "\n")

    try:
        yield
    finally:
        print("\n" + "=" * 80)
        print("🛑 SHUTTING DOWN GATEWAY")
        print("=" * 80)

        await engine.shutdown()

        if sweep_task:
            sweep_task.cancel()
            results = await asyncio.gather(sweep_task, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                    print(f"   ⚠️  Sweep task error during shutdown: {result}")

        print("✅ GATEWAY SHUTDOWN COMPLETE")
        print("=" * 80 + "\n")


# ============================================================
# Create FastAPI App
# ============================================================

def create_app(engine: Optional[AttestationEngine] = None) -> FastAPI:
    app = FastAPI(
        title="Veriflare Attestation Gateway",
        description="Flare Data Connector Web2Json attestation service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.source_cache = engine.preparer.source_cache if engine else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(fdc.router)
    app.include_router(source_cache.router)

    @app.get("/")
    async def root():
        return {
            "service": "Veriflare Attestation Gateway",
            "version": __version__,
            "endpoints": {
                "attest": "POST /api/fdc/attest",
                "attest_commit": "POST /api/fdc/attest-commit",
                "start": "POST /api/fdc/attestations",
                "status": "GET /api/fdc/attestation/{id}",
                "source_cache": "GET /api/source-cache/{key}",
                "health": "GET /health",
            },
        }

    @app.get("/health", response_model=HealthResponse)
    async def health():
        from veriflare.config import BUILD_ID, GITHUB_COMMIT

        return HealthResponse(
            service="veriflare-gateway",
            status="ok",
            build_id=BUILD_ID,
            github_commit=GITHUB_COMMIT,
            timestamp=canonical_timestamp(),
        )

    return app


app = create_app()


# ============================================================
# Run Server
# ============================================================

def main():
    import uvicorn

    from veriflare.config import BUILD_ID, GITHUB_COMMIT, PORT

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("=" * 60)
    print("🚀 Starting Veriflare Attestation Gateway")
    print("=" * 60)
    print(f"Build ID: {BUILD_ID}")
    print(f"GitHub Commit: {GITHUB_COMMIT}")
    print("=" * 60)

    uvicorn.run(app, host="0.0.0.0", port=PORT, log_level="info")


if __name__ == "__main__":
    main()

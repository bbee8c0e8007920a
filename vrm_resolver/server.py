#!/usr/bin/env python3
"""
VRM Lookup Gateway

Thin HTTP layer over VehicleResolver. Resolves registrations to vehicle
profiles, exposes cache invalidation for data-correction workflows and a
running summary of provider spend.

Endpoints:
- GET    /health
- GET    /vehicles/{plate}?force_refresh=&mileage=
- POST   /vehicles/lookup
- DELETE /vehicles/{plate}/cache
- GET    /costs

Usage:
    python -m vrm_resolver.server --port 8400 --config resolver.json
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from vrm_resolver import __version__
from vrm_resolver.config import ResolverConfig, load_config
from vrm_resolver.errors import ResolverError, failure_kind_of, http_status, user_message
from vrm_resolver.resolver import VehicleResolver, build_resolver

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================

class LookupRequest(BaseModel):
    plate: str
    force_refresh: bool = False
    mileage: Optional[int] = None


# =============================================================================
# FastAPI App
# =============================================================================

def create_app(resolver: Optional[VehicleResolver] = None,
               config: Optional[ResolverConfig] = None) -> FastAPI:
    """
    Build the gateway app.

    Args:
        resolver: Pre-built resolver (tests). When omitted one is built
            from `config` at startup and closed at shutdown.
        config: Configuration used when no resolver is given.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle."""
        owned = app.state.resolver is None
        if owned:
            app.state.resolver = build_resolver(config or load_config())
        logger.info("VRM gateway starting...")
        yield
        if owned:
            await app.state.resolver.close()
            logger.info("Resolver closed on shutdown")

    app = FastAPI(
        title="VRM Resolver",
        description="Vehicle registration lookup with provider merge and cost-aware caching",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.resolver = resolver

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ResolverError)
    async def resolver_error_handler(request: Request, exc: ResolverError):
        kind = failure_kind_of(exc)
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=http_status(exc),
            content={
                "error": kind.value if kind else "internal_error",
                "detail": user_message(exc),
            },
        )

    def get_resolver(request: Request) -> VehicleResolver:
        return request.app.state.resolver

    @app.get("/health")
    async def health(request: Request):
        resolver = get_resolver(request)
        return {
            "status": "ok",
            "version": __version__,
            "in_flight": resolver.single_flight.pending if resolver else 0,
        }

    async def _lookup(request: Request, plate: str, force_refresh: bool, mileage: Optional[int]):
        result = await get_resolver(request).resolve(plate, force_refresh=force_refresh, mileage=mileage)
        return {
            "profile": result.profile.to_dict(),
            "cost": result.cost.to_dict(),
        }

    @app.get("/vehicles/{plate}")
    async def get_vehicle(request: Request, plate: str, force_refresh: bool = False,
                          mileage: Optional[int] = None):
        """Resolve a registration to a vehicle profile."""
        return await _lookup(request, plate, force_refresh, mileage)

    @app.post("/vehicles/lookup")
    async def lookup_vehicle(request: Request, body: LookupRequest):
        """Same as GET /vehicles/{plate}, for plates typed with spaces."""
        return await _lookup(request, body.plate, body.force_refresh, body.mileage)

    @app.delete("/vehicles/{plate}/cache")
    async def invalidate_vehicle(request: Request, plate: str):
        """Drop cached provider data so the next lookup refetches."""
        removed = await get_resolver(request).invalidate(plate)
        return {"invalidated": removed}

    @app.get("/costs")
    async def costs(request: Request):
        return get_resolver(request).accountant.summary()

    return app


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="VRM Lookup Gateway")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8400, help="Port to listen on")
    parser.add_argument("--config", default=None, help="JSON config file")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    uvicorn.run(create_app(config=load_config(args.config)), host=args.host, port=args.port)

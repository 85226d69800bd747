from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import httpx
import logging

from roadwatch.core.config import settings
from roadwatch.core.exceptions import AppException
from roadwatch.core.redis import close_redis_client, get_redis_client, ping_cache
from roadwatch.domains.routing import (
    GeocodingService,
    OpenRouteServiceProvider,
    RouteAcquisitionService,
    RouteRequestCoordinator,
    TomTomProvider,
)
from roadwatch.domains.routing.router import router as routing_router, traffic_router
from roadwatch.domains.routing.traffic import TomTomFlowLookup
from roadwatch.infra.settings import get_provider_settings


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Roadwatch API",
    description="路况上报地图导航核心 API",
    version="1.0.0",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    openapi_url=f"{settings.api_prefix}/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.detail,
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "Internal server error",
            "details": str(exc) if settings.debug else None,
        },
    )


app.include_router(routing_router, prefix=settings.api_prefix)
app.include_router(traffic_router, prefix=settings.api_prefix)


@app.on_event("startup")
async def startup_event():
    """启动时创建共享HTTP客户端、路线协调器与各服务"""
    provider_settings = get_provider_settings()
    http_client = httpx.AsyncClient(timeout=settings.route_timeout_s)

    app.state.provider_settings = provider_settings
    app.state.http_client = http_client
    app.state.redis = await get_redis_client()
    app.state.coordinator = RouteRequestCoordinator.from_settings(settings)
    app.state.flow_lookup = TomTomFlowLookup(
        provider_settings, http_client, timeout=settings.flow_timeout_s,
    )
    # 路线交通修正中的流量查询属于附带查询，超时更短
    route_flow_lookup = TomTomFlowLookup(
        provider_settings, http_client, timeout=settings.auxiliary_timeout_s,
    )
    app.state.acquisition = RouteAcquisitionService(
        primary=OpenRouteServiceProvider(provider_settings, http_client, timeout=settings.route_timeout_s),
        secondary=TomTomProvider(provider_settings, http_client, timeout=settings.route_timeout_s),
        flow_lookup=route_flow_lookup,
    )
    app.state.geocoding = GeocodingService(
        provider_settings,
        http_client,
        timeout=settings.geocode_timeout_s,
        ttl_seconds=settings.geocode_memo_ttl_s,
    )
    logger.info("Route coordinator and provider clients started")


@app.on_event("shutdown")
async def shutdown_event():
    """关闭共享HTTP客户端与Redis连接"""
    await app.state.http_client.aclose()
    await close_redis_client()
    logger.info("Provider clients closed")


@app.get("/health")
async def health_check():
    cache = await ping_cache(getattr(app.state, "redis", None))
    return {"status": "healthy", "version": "1.0.0", "response_cache": cache}


@app.get("/")
async def root():
    return {
        "name": "Roadwatch API",
        "version": "1.0.0",
        "docs": f"{settings.api_prefix}/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("roadwatch.main:app", host="0.0.0.0", port=8000, reload=settings.debug)

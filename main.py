"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from redis.exceptions import RedisError
from contextlib import asynccontextmanager

from api.routes import webhooks as webhook_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger
from infrastructure.database import create_tables, dispose_engine
from infrastructure.external.cache import (
    get_redis_client,
    init_redis_client,
    shutdown_redis_client,
)


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 开发环境自动建表；生产环境的订单/支付表由商城系统维护
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    if settings.WEBHOOK_TEST_MODE:
        logger.warning("webhook_test_mode_enabled", environment=settings.ENVIRONMENT)
    if settings.redis.url:
        # 幂等记录依赖 Redis，连接失败直接启动失败
        await init_redis_client()
        logger.info("redis_initialized", namespace=settings.redis.namespace)
    else:
        logger.warning("idempotency_in_memory", message="REDIS__URL not set, dedup is per-process only")

    yield

    if settings.redis.url:
        await shutdown_redis_client()
    await dispose_engine()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="支付网关 webhook 校验、去重与对账",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)
# 2. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 注册全局异常处理器
register_exception_handlers(app)

# 注册路由
app.include_router(webhook_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点（配置了 Redis 时一并检查幂等存储）"""
    data = {"status": "healthy"}
    if settings.redis.url:
        try:
            redis = await get_redis_client()
            data["redis"] = "ok" if await redis.ping() else "unavailable"
        except RedisError as e:
            logger.warning("health_redis_unavailable", error=str(e))
            data["redis"] = "unavailable"
    return success_response(data=data, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.log_level.lower(),
    )

import uuid

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from marketplace.common.log import log, set_custom_logfile, setup_logging
from marketplace.core.conf import settings
from marketplace.database.db import create_tables
from marketplace.database.redis import redis_client
from marketplace.src.billing.credits.listeners import register_credit_listeners
from marketplace.src.billing.shared.events import credit_event_bus
from marketplace.src.billing.shared.exceptions import BillingError

# BillingError.code -> HTTP status
BILLING_ERROR_STATUS = {
    'INSUFFICIENT_CREDITS': 402,
    'ACCOUNT_NOT_FOUND': 404,
    'PACKAGE_NOT_FOUND': 404,
    'INVALID_AMOUNT': 422,
    'PRICING_ERROR': 422,
    'SUBSCRIPTION_ERROR': 409,
    'WEBHOOK_ERROR': 400,
}


@asynccontextmanager
async def register_init(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    启动初始化

    :param app: FastAPI 应用实例
    :return:
    """
    # 创建数据库表
    await create_tables()

    # 注册积分事件监听
    register_credit_listeners(credit_event_bus)

    yield

    # 等待未完成的事件监听任务
    await credit_event_bus.drain()

    # 关闭 redis 连接
    await redis_client.aclose()


def register_app() -> FastAPI:
    """注册 FastAPI 应用"""
    app = FastAPI(
        title=settings.FASTAPI_TITLE,
        description=settings.FASTAPI_DESCRIPTION,
        docs_url=settings.FASTAPI_DOCS_URL,
        redoc_url=settings.FASTAPI_REDOC_URL,
        openapi_url=settings.FASTAPI_OPENAPI_URL,
        lifespan=register_init,
    )

    # 注册组件
    register_logger()
    register_middleware(app)
    register_router(app)
    register_exception(app)

    return app


def register_logger() -> None:
    """注册日志"""
    setup_logging()
    if settings.LOG_FILE_ENABLED:
        set_custom_logfile()


def register_middleware(app: FastAPI) -> None:
    """
    注册中间件（执行顺序从下往上）

    :param app: FastAPI 应用实例
    :return:
    """

    @app.middleware('http')
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(settings.TRACE_ID_REQUEST_HEADER_KEY) or uuid.uuid4().hex
        with logger.contextualize(request_id=request_id):
            response = await call_next(request)
        response.headers[settings.TRACE_ID_REQUEST_HEADER_KEY] = request_id
        return response

    # CORS
    if settings.MIDDLEWARE_CORS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=['*'],
            allow_headers=['*'],
            expose_headers=settings.CORS_EXPOSE_HEADERS,
        )


def register_router(app: FastAPI) -> None:
    """
    注册路由

    :param app: FastAPI 应用实例
    :return:
    """
    from marketplace.app.router import router

    app.include_router(router)


def register_exception(app: FastAPI) -> None:
    """注册全局异常处理"""

    @app.exception_handler(BillingError)
    async def billing_exception_handler(request: Request, exc: BillingError) -> JSONResponse:
        status_code = BILLING_ERROR_STATUS.get(exc.code, 500)
        if status_code >= 500:
            log.error(f'[BILLING] {exc.code}: {exc.message}')
        return JSONResponse(status_code=status_code, content=exc.to_dict())

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from marketplace.core.path_conf import BASE_PATH


class Settings(BaseSettings):
    """全局配置"""

    model_config = SettingsConfigDict(
        env_file=f'{BASE_PATH}/.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=True,
    )

    # .env 当前环境
    ENVIRONMENT: Literal['dev', 'prod'] = 'dev'

    # FastAPI
    FASTAPI_API_V1_PATH: str = '/api/v1'
    FASTAPI_TITLE: str = 'GenerationMarketplace'
    FASTAPI_DESCRIPTION: str = 'Generation marketplace credit and billing backend'
    FASTAPI_DOCS_URL: str = '/docs'
    FASTAPI_REDOC_URL: str = '/redoc'
    FASTAPI_OPENAPI_URL: str | None = '/openapi'

    # .env 数据库
    DATABASE_TYPE: Literal['postgresql', 'sqlite'] = 'postgresql'
    DATABASE_HOST: str = '127.0.0.1'
    DATABASE_PORT: int = 5432
    DATABASE_USER: str = 'postgres'
    DATABASE_PASSWORD: str = ''

    # 数据库
    DATABASE_ECHO: bool | Literal['debug'] = False
    DATABASE_POOL_ECHO: bool | Literal['debug'] = False
    DATABASE_SCHEMA: str = 'marketplace'
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_SQLITE_BUSY_TIMEOUT: int = 30  # seconds a writer waits on the SQLite write lock

    # .env Redis
    REDIS_HOST: str = '127.0.0.1'
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str = ''
    REDIS_USERNAME: str = 'default'  # For Redis 6+ ACL (cloud Redis typically uses 'default')
    REDIS_DATABASE: int = 0

    # Redis
    REDIS_TIMEOUT: int = 5

    # .env Token
    TOKEN_SECRET_KEY: str = ''  # 密钥 secrets.token_urlsafe(32)

    # Token
    TOKEN_ALGORITHM: str = 'HS256'

    # CORS
    CORS_ALLOWED_ORIGINS: list[str] = [  # 末尾不带斜杠
        'http://127.0.0.1:8000',
        'http://localhost:5173',
    ]
    CORS_EXPOSE_HEADERS: list[str] = [
        'X-Request-ID',
    ]

    # 中间件配置
    MIDDLEWARE_CORS: bool = True

    # Trace ID
    TRACE_ID_REQUEST_HEADER_KEY: str = 'X-Request-ID'
    TRACE_ID_LOG_DEFAULT_VALUE: str = '-'

    # 日志
    LOG_FORMAT: str = (
        '<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</> | <lvl>{level: <8}</> | <cyan>{extra[request_id]}</> | <lvl>{message}</>'
    )

    # 日志（控制台）
    LOG_STD_LEVEL: str = 'INFO'

    # 日志（文件）
    LOG_FILE_ENABLED: bool = False
    LOG_FILE_ACCESS_LEVEL: str = 'INFO'
    LOG_FILE_ERROR_LEVEL: str = 'ERROR'
    LOG_ACCESS_FILENAME: str = 'marketplace_access.log'
    LOG_ERROR_FILENAME: str = 'marketplace_error.log'

    ##################################################
    # [ Billing ] pricing & credits
    ##################################################
    # USD charged per USD of provider cost
    PRICING_PROFIT_MARGIN: float = Field(default=1.5, ge=1.0, le=5.0)
    # USD value of a single credit
    PRICING_CREDIT_VALUE_USD: float = Field(default=0.05, ge=0.001, le=1.0)

    CREDIT_BALANCE_CACHE_PREFIX: str = 'marketplace:credit_balance'
    CREDIT_BALANCE_CACHE_TTL: int = 60 * 5  # 5 分钟

    ##################################################
    # [ Billing ] Stripe
    ##################################################
    BILLING_ENABLED: bool = True

    # .env Stripe
    STRIPE_SECRET_KEY: str = ''
    STRIPE_WEBHOOK_SECRET: str = ''
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Package price ids
    STRIPE_BASIC_MONTHLY_PRICE_ID: str = ''
    STRIPE_BASIC_YEARLY_PRICE_ID: str = ''
    STRIPE_PRO_MONTHLY_PRICE_ID: str = ''
    STRIPE_PRO_YEARLY_PRICE_ID: str = ''
    STRIPE_ULTIMATE_MONTHLY_PRICE_ID: str = ''
    STRIPE_ULTIMATE_YEARLY_PRICE_ID: str = ''

    @model_validator(mode='before')
    @classmethod
    def check_env(cls, values: Any) -> Any:
        """检查环境变量"""
        if values.get('ENVIRONMENT') == 'prod':
            # FastAPI
            values['FASTAPI_OPENAPI_URL'] = None

            if not values.get('TOKEN_SECRET_KEY'):
                raise ValueError('TOKEN_SECRET_KEY must be set in production')

        return values


@lru_cache
def get_settings() -> Settings:
    """获取全局配置单例"""
    return Settings()


# 创建全局配置实例
settings = get_settings()

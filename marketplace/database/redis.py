from redis.asyncio import Redis

from marketplace.core.conf import settings


class RedisCli(Redis):
    """Redis 客户端"""

    def __init__(self) -> None:
        super().__init__(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            username=settings.REDIS_USERNAME if settings.REDIS_PASSWORD else None,
            password=settings.REDIS_PASSWORD or None,
            db=settings.REDIS_DATABASE,
            socket_timeout=settings.REDIS_TIMEOUT,
            socket_connect_timeout=settings.REDIS_TIMEOUT,
            socket_keepalive=True,  # 保持连接
            health_check_interval=30,  # 健康检查间隔
            decode_responses=True,  # 转码 utf-8
        )


# 创建 redis 客户端单例
redis_client: RedisCli = RedisCli()

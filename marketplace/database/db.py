import os
import sys

from sqlalchemy import URL, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from marketplace.common.log import log
from marketplace.common.model import MappedBase
from marketplace.core.conf import settings
from marketplace.core.path_conf import SQLITE_DIR


def create_database_url(*, unittest: bool = False) -> URL:
    """
    创建数据库链接

    :param unittest: 是否用于单元测试
    :return:
    """
    if settings.DATABASE_TYPE == 'sqlite':
        os.makedirs(SQLITE_DIR, exist_ok=True)
        name = f'{settings.DATABASE_SCHEMA}_test' if unittest else settings.DATABASE_SCHEMA
        return URL.create(drivername='sqlite+aiosqlite', database=str(SQLITE_DIR / f'{name}.sqlite3'))

    return URL.create(
        drivername='postgresql+asyncpg',
        username=settings.DATABASE_USER,
        password=settings.DATABASE_PASSWORD,
        host=settings.DATABASE_HOST,
        port=settings.DATABASE_PORT,
        database=settings.DATABASE_SCHEMA if not unittest else f'{settings.DATABASE_SCHEMA}_test',
    )


def enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    """
    让 SQLite 事务以 BEGIN IMMEDIATE 开始

    SQLite ignores ``SELECT ... FOR UPDATE``; taking the database write lock at
    BEGIN gives ledger transactions the same read-then-write exclusion a row
    lock gives on PostgreSQL.
    See https://docs.sqlalchemy.org/en/20/dialects/sqlite.html#serializable-isolation-savepoints-transactional-ddl-asyncio-version
    """

    @event.listens_for(engine.sync_engine, 'connect')
    def do_connect(dbapi_connection, connection_record):
        # disable the driver's own BEGIN handling
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, 'begin')
    def do_begin(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


def create_async_engine_and_session(url: str | URL) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    创建异步数据库引擎和会话工厂

    :param url: 数据库链接
    :return:
    """
    is_sqlite = str(url).startswith('sqlite')
    engine_kwargs = {}
    if is_sqlite:
        engine_kwargs['connect_args'] = {'timeout': settings.DATABASE_SQLITE_BUSY_TIMEOUT}
    else:
        engine_kwargs.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    try:
        # 数据库引擎
        engine = create_async_engine(
            url,
            echo=settings.DATABASE_ECHO,
            echo_pool=settings.DATABASE_POOL_ECHO,
            future=True,
            **engine_kwargs,
        )
    except Exception as e:
        log.error('❌ 数据库链接失败 {}', e)
        sys.exit()
    else:
        if is_sqlite:
            enable_sqlite_write_locking(engine)
        db_session = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
        return engine, db_session


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """创建数据库表"""
    import marketplace.src.billing.models  # noqa: F401

    async with (engine or async_engine).begin() as coon:
        await coon.run_sync(MappedBase.metadata.create_all)


async def drop_tables(engine: AsyncEngine | None = None) -> None:
    """删除数据库表"""
    async with (engine or async_engine).begin() as conn:
        await conn.run_sync(MappedBase.metadata.drop_all)


# SQLA 数据库链接
SQLALCHEMY_DATABASE_URL = create_database_url()

# SQLA 异步引擎和会话
async_engine, async_db_session = create_async_engine_and_session(SQLALCHEMY_DATABASE_URL)

"""Conexión a la base de datos (PostgreSQL en servidor, SQLite en el dispositivo)"""
import logging
import os
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

# Base para modelos del servidor (entradas y auditoría)
Base = declarative_base()

# Engine y session factory del proceso
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None


def to_async_url(database_url: str) -> str:
    """Convertir URLs síncronas a su driver async"""
    # Limpiar parámetros de la URL (SSL se configura aparte)
    if database_url.startswith("postgresql") and "?" in database_url:
        database_url = database_url.split("?")[0]

    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql+psycopg://"):
        return database_url.replace("postgresql+psycopg://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """Crear un engine async con la configuración de pool adecuada"""
    async_url = to_async_url(database_url)
    logger.info(f"Using async driver: {async_url.split(':')[0]}")

    if async_url.startswith("sqlite"):
        # SQLite local: sin pool de servidor
        return create_async_engine(async_url, echo=echo)

    return create_async_engine(
        async_url,
        echo=echo,
        pool_pre_ping=True,  # Verificar conexiones antes de usar
        pool_recycle=300,
        pool_timeout=30,
        pool_size=int(os.getenv("DATABASE_POOL_SIZE", "5")),
        max_overflow=int(os.getenv("DATABASE_MAX_OVERFLOW", "10")),
    )


def create_session_factory(db_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(database_url: str) -> async_sessionmaker:
    """Inicializar conexión a la base de datos del proceso"""
    global engine, async_session_maker

    if engine is not None:
        logger.warning("Database engine already initialized, skipping...")
        return async_session_maker

    logger.info(
        f"Initializing database connection to: {database_url.split('@')[1] if '@' in database_url else database_url}"
    )
    engine = create_engine_for(database_url, echo=os.getenv("APP_DEBUG", "False").lower() == "true")
    async_session_maker = create_session_factory(engine)
    logger.info("Database engine initialized successfully")
    return async_session_maker


async def create_tables(db_engine: AsyncEngine, metadata=None) -> None:
    """Crear tablas (SQLite local y pruebas; en servidor se usan migraciones)"""
    metadata = metadata if metadata is not None else Base.metadata
    async with db_engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def close_db():
    """Cerrar conexiones a la base de datos"""
    global engine, async_session_maker
    if engine:
        logger.info("Closing database connections...")
        await engine.dispose()
        engine = None
        async_session_maker = None
        logger.info("Database connections closed")

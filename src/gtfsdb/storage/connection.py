"""
Provedor de Conexões.

Constrói o Engine SQLAlchemy (pool de conexões) usado por todas as
operações de namespace. O pool limita conexões simultâneas e, com
`pool_timeout=None`, bloqueia chamadores excedentes até uma conexão ser
liberada.
"""

from typing import Optional

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import QueuePool, StaticPool

from ..common.config import get_config
from ..common.logging_config import get_logger

logger = get_logger(__name__)

_UNSET = object()


def create_engine_from_url(
    url: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
    pool_size: Optional[int] = None,
    max_overflow: Optional[int] = None,
    pool_timeout=_UNSET,
) -> Engine:
    """
    Cria o Engine a partir de URL e credenciais.

    Valores omitidos vêm da configuração (`get_config()`).

    Args:
        url: URL SQLAlchemy do banco (ex: postgresql+psycopg2://host/db)
        user: Usuário (sobrescreve o da URL)
        password: Senha (sobrescreve a da URL)
        pool_size: Conexões mantidas no pool
        max_overflow: Conexões extras além de pool_size
        pool_timeout: Segundos de espera por conexão (None = indefinido)

    Returns:
        Engine configurado
    """
    config = get_config()

    db_url = make_url(url or config.DATABASE_URL)
    user = user or config.DATABASE_USER
    password = password or config.DATABASE_PASSWORD
    if user:
        db_url = db_url.set(username=user)
    if password:
        db_url = db_url.set(password=password)

    if pool_timeout is _UNSET:
        pool_timeout = config.DB_POOL_TIMEOUT

    if db_url.get_backend_name() == "sqlite":
        return _create_sqlite_engine(db_url, pool_size, max_overflow, pool_timeout)

    engine = sa.create_engine(
        db_url,
        poolclass=QueuePool,
        pool_size=pool_size or config.DB_POOL_SIZE,
        max_overflow=max_overflow if max_overflow is not None else config.DB_MAX_OVERFLOW,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
    )

    logger.info(
        f"Database engine created for {db_url.render_as_string(hide_password=True)}",
        extra={"pool_size": engine.pool.size()},
    )
    return engine


def _create_sqlite_engine(db_url, pool_size, max_overflow, pool_timeout) -> Engine:
    """
    Engine SQLite com DDL transacional.

    O driver sqlite3 faz commit implícito antes de DDL; o listener abaixo
    desliga esse comportamento e emite BEGIN explicitamente, de modo que
    CREATE/DROP TABLE participem da transação corrente.
    """
    config = get_config()

    if db_url.database in (None, "", ":memory:"):
        engine = sa.create_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = sa.create_engine(
            db_url,
            poolclass=QueuePool,
            pool_size=pool_size or config.DB_POOL_SIZE,
            max_overflow=max_overflow if max_overflow is not None else config.DB_MAX_OVERFLOW,
            pool_timeout=pool_timeout,
            connect_args={"check_same_thread": False},
        )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    logger.info(f"SQLite engine created for {db_url.database or ':memory:'}")
    return engine

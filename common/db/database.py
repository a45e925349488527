# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import time
from typing import Annotated
from collections.abc import Generator

from functools import cache
import logging
from common.config import inject_db_config

from sqlalchemy import create_engine, inspect, event, Engine
from sqlalchemy.orm import declarative_base, sessionmaker, DeclarativeBase, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.schema import CreateSchema
import sqlalchemy.exc

from fastapi import Depends, status, HTTPException

#################
# DB Definition #
#################

_logger = logging.getLogger(__name__)


Base: DeclarativeBase = declarative_base()


def now() -> float:
    """Current time as stored in the expiry columns (epoch seconds)"""
    return time.time()


def _create_engine(db_connection_string: str) -> Engine:
    if db_connection_string.startswith("sqlite"):
        # In memory databases only live as long as their single connection
        return create_engine(
            db_connection_string,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(db_connection_string, pool_pre_ping=True)


@cache
def _setup_db(db_connection_string: str, db_schema: str | None):
    """Sets up a DB connection with the schema and creates the missing tables"""
    engine = _create_engine(db_connection_string)

    if engine.dialect.name == "postgresql" and db_schema:

        @event.listens_for(engine, "connect", insert=True)
        def set_search_path(dbapi_connection, connection_record):
            """
            Setting Session search path every time a new connection is made
            https://docs.sqlalchemy.org/en/20/dialects/postgresql.html#setting-alternate-search-paths-on-connect
            """
            existing_autocommit = dbapi_connection.autocommit
            dbapi_connection.autocommit = True
            cursor = dbapi_connection.cursor()
            cursor.execute("SET SESSION search_path TO '%s'" % db_schema)
            cursor.close()
            dbapi_connection.autocommit = existing_autocommit

        inspector = inspect(engine)
        if db_schema not in inspector.get_schema_names():
            with engine.connect() as conn:
                conn.execute(CreateSchema(db_schema, if_not_exists=True))
                conn.commit()

    # Only tables of imported model modules are known to the metadata
    Base.metadata.create_all(engine)
    _logger.info(f"Database ready with tables {sorted(Base.metadata.tables)}")

    _session_local = sessionmaker(bind=engine)
    return engine, _session_local


def session(db_connection_string: str, db_schema: str | None) -> Session:
    try:
        engine, _session_local = _setup_db(db_connection_string, db_schema)
        db_session = _session_local()
        return db_session
    except sqlalchemy.exc.OperationalError:
        _logger.exception("Could not establish connection to database.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not establish connection to database",
        )


def env_session(db_config: inject_db_config) -> Generator[Session, None, None]:
    db_session = session(
        db_connection_string=db_config.SQLALCHEMY_DATABASE_URL,
        db_schema=db_config.SQLALCHEMY_DATABASE_SCHEMA,
    )
    try:
        yield db_session
    finally:
        db_session.close()


inject = Annotated[Session, Depends(env_session)]

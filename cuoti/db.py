import os
import logging
from typing import Any, Dict, List, NamedTuple, Optional, Union

from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.elements import TextClause

from cuoti.models import Base

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///cuoti.db")

Query = Union[str, TextClause]


class ExecuteResult(NamedTuple):
    last_insert_id: Optional[int]
    rowcount: int


class Database:
    """
    Persistence gateway. Every statement runs on its own connection and
    commits immediately; multi-statement operations are not atomic.
    """

    def __init__(self, url: Optional[str] = None, echo: bool = False):
        self.url = url or DATABASE_URL
        kwargs: Dict[str, Any] = {"echo": echo, "future": True}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(self.url, **kwargs)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables ready at %s", self.engine.url.render_as_string(hide_password=True))

    def select(self, query: Query, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        stmt = text(query) if isinstance(query, str) else query
        with self.engine.connect() as conn:
            result = conn.execute(stmt, params or {})
            return [dict(row._mapping) for row in result]

    def execute(self, query: Query, params: Optional[Dict[str, Any]] = None) -> ExecuteResult:
        stmt = text(query) if isinstance(query, str) else query
        with self.engine.begin() as conn:
            result = conn.execute(stmt, params or {})
            return ExecuteResult(last_insert_id=result.lastrowid, rowcount=result.rowcount)

    def dispose(self) -> None:
        self.engine.dispose()

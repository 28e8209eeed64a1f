"""
PostgreSQL Adapter

SQL steps through a SQLAlchemy engine. The engine is synchronous, so
each statement runs in a worker thread via asyncio.to_thread and the
connection pool absorbs concurrent tests.

Actions: execute, query, queryOne, count. Every action needs `sql`;
`params` may be a dict (:name binds) or a list ($1, $2 ... placeholders).

    - adapter: postgresql
      action: queryOne
      sql: SELECT id, email FROM users WHERE email = $1
      params: ["{{email}}"]
      capture:
        userId: id
      assert:
        - column: email
          equals: "{{email}}"
"""

import asyncio
import logging
import re
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple

from ..assertions.jsonpath import UNDEFINED
from ..assertions.runner import run_assertion, run_path_assertions
from ..errors import AdapterError, AdapterConnectionError, AssertionFailedError
from ..models import AdapterType
from .base import BaseAdapter

logger = logging.getLogger(__name__)

_POSITIONAL = re.compile(r"\$(\d+)(::)?")


def _named_placeholder(match) -> str:
    # text() only binds :pN when no colon follows, so casts are escaped
    cast = r"\:\:" if match.group(2) else ""
    return f":p{match.group(1)}{cast}"


def to_named_params(sql: str, params: Any) -> Tuple[str, Dict[str, Any]]:
    """Convert $1-style SQL with a list of params to :p1-style with a dict."""
    if params is None:
        return sql, {}
    if isinstance(params, Mapping):
        return sql, dict(params)
    values = list(params)
    named = _POSITIONAL.sub(_named_placeholder, sql)
    return named, {f"p{i + 1}": value for i, value in enumerate(values)}


class PostgreSQLAdapter(BaseAdapter):
    """Database steps against PostgreSQL."""

    adapter_type = AdapterType.POSTGRESQL

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._engine = None
        self._handlers = {
            "execute": self._handle_execute,
            "query": self._handle_query,
            "queryOne": self._handle_query_one,
            "count": self._handle_count,
        }

    async def connect(self):
        if self.connected:
            return
        from sqlalchemy import create_engine, text

        try:
            self._engine = create_engine(
                self.config["connectionString"],
                pool_size=self.config.get("poolMax", 5),
                pool_pre_ping=True,
                pool_recycle=1800,
            )

            def ping():
                with self._engine.connect() as conn:
                    conn.execute(text("SELECT 1"))

            await asyncio.to_thread(ping)
        except Exception as e:
            self._engine = None
            raise AdapterConnectionError(self.name, f"Failed to connect: {e}") from e

        self.connected = True
        logger.info("PostgreSQL connected")

    async def disconnect(self):
        if self._engine is not None:
            await asyncio.to_thread(self._engine.dispose)
            self._engine = None
            logger.info("PostgreSQL disconnected")
        self.connected = False

    async def health_check(self) -> bool:
        if self._engine is None:
            return False
        try:
            await self.run_sql("SELECT 1")
            return True
        except Exception as e:
            logger.debug(f"PostgreSQL health check failed: {e}")
            return False

    async def run_sql(self, sql: str, params: Any = None) -> Tuple[List[Dict[str, Any]], int]:
        """Execute a statement in a transaction. Returns (rows, rowcount)."""
        from sqlalchemy import text

        statement, binds = to_named_params(sql, params)

        def run():
            with self._engine.begin() as conn:
                result = conn.execute(text(statement), binds)
                rows = [dict(row._mapping) for row in result] if result.returns_rows else []
                return rows, result.rowcount

        return await asyncio.to_thread(run)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_execute(self, params: Dict[str, Any], ctx: Any) -> Dict[str, Any]:
        sql = self.require(params, "sql", "execute")
        rows, rowcount = await self.run_sql(sql, params.get("params"))
        return {
            "query": sql,
            "params": params.get("params") or [],
            "rowCount": rowcount if rowcount >= 0 else len(rows),
            "command": sql.strip().split(None, 1)[0].upper(),
        }

    async def _handle_query(self, params: Dict[str, Any], ctx: Any) -> Dict[str, Any]:
        sql = self.require(params, "sql", "query")
        rows, _ = await self.run_sql(sql, params.get("params"))
        return {
            "query": sql,
            "params": params.get("params") or [],
            "rowCount": len(rows),
            "rows": rows,
        }

    async def _handle_query_one(self, params: Dict[str, Any], ctx: Any) -> Dict[str, Any]:
        sql = self.require(params, "sql", "queryOne")
        rows, _ = await self.run_sql(sql, params.get("params"))
        if not rows:
            raise AdapterError(self.name, "queryOne", "Expected exactly one row, got 0")
        return {
            "query": sql,
            "params": params.get("params") or [],
            "rowCount": 1,
            "rows": rows[:1],
        }

    async def _handle_count(self, params: Dict[str, Any], ctx: Any) -> Dict[str, Any]:
        sql = self.require(params, "sql", "count")
        rows, _ = await self.run_sql(sql, params.get("params"))
        count = int(rows[0].get("count", 0)) if rows else 0
        return {"query": sql, "params": params.get("params") or [], "count": count}

    # =========================================================================
    # Capture and assertions
    # =========================================================================

    def capture_source(self, data: Any) -> Any:
        """Capture paths name columns of the first row."""
        rows = (data or {}).get("rows")
        return rows[0] if rows else data

    def assertion_source(self, data: Any) -> Any:
        data = data or {}
        if "count" in data:
            return data["count"]
        if "rows" in data:
            return data["rows"]
        return data

    def check_assertions(self, data: Any, assertion: Any):
        if not assertion:
            return
        if isinstance(assertion, Mapping):
            run_assertion(self.assertion_source(data), assertion)
            return

        rows = (data or {}).get("rows") or []
        for item in assertion:
            if "column" not in item:
                run_path_assertions(data, [item])
                continue
            check_row(rows, item)


def check_row(rows: List[Dict[str, Any]], assertion: Dict[str, Any]):
    """Assert on one column of one row: {row, column, <predicates>}."""
    row_index = assertion.get("row", 0)
    column = assertion["column"]
    path = f"row[{row_index}].{column}"

    if row_index >= len(rows):
        if assertion.get("exists") is not False:
            raise AssertionFailedError(
                f"Row {row_index} does not exist (only {len(rows)} rows)",
                path=path,
                operator="exists",
            )
        return

    value = rows[row_index].get(column, UNDEFINED)
    run_assertion(value, assertion, path)

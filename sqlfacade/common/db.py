import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple, TypeVar, Union

from sqlalchemy import create_engine, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection, CursorResult, Engine

from sqlfacade.common.errors import (
    DatabaseConnectionError,
    ErrorKind,
    QueryError,
    classify_error,
    driver_error_code,
)
from sqlfacade.common.row_utils import Row, map_rows
from sqlfacade.config.database import DatabaseConfig, load_database_config
from sqlfacade.utils.metrics import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")
Params = Union[Sequence[Any], Mapping[str, Any], None]

_BIND_NAME = re.compile(r"^\w+$")
_QUOTES = ("'", '"', "`")
_LEADING_INT = re.compile(r"^\s*[+-]?\d+")


@dataclass(frozen=True)
class QueryRecord:
    sql: str
    duration_ms: float


class ErrorInfo(NamedTuple):
    """마지막 드라이버 에러 (SQLSTATE, 드라이버 코드, 메시지). 성공 시 ("00000", None, None)."""
    sqlstate: str
    code: Optional[int]
    message: Optional[str]


NO_ERROR = ErrorInfo("00000", None, None)


def _bind_placeholders(sql: str, values: Optional[Sequence[Any]]) -> Tuple[str, Dict[str, Any]]:
    """
    SQLAlchemy text()에 넘길 문장을 만듭니다.

    - values가 시퀀스면 `?` 자리표시자를 이름 있는 바인드(:p0, :p1, ...)로 바꿈
    - values가 None이면 (이름 있는 바인드 모드) `?`는 그대로 둠
    - 따옴표로 감싼 리터럴/식별자 안의 `?`는 건드리지 않고, `:`는 `\\:`로 이스케이프
      (text()가 '{"a":1}', 'x :y' 같은 리터럴을 바인드로 오인하지 않도록)
    """
    out: List[str] = []
    binds: Dict[str, Any] = {}
    quote = None
    escaped = False

    for ch in sql:
        if quote:
            out.append("\\:" if ch == ":" else ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue

        if ch in _QUOTES:
            quote = ch
            out.append(ch)
        elif ch == "?" and values is not None:
            index = len(binds)
            if index >= len(values):
                raise ValueError(f"Not enough parameters: got {len(values)}")
            binds[f"p{index}"] = values[index]
            out.append(f":p{index}")
        else:
            out.append(ch)

    if values is not None and len(binds) != len(values):
        raise ValueError(f"Parameter count mismatch: {len(binds)} placeholders, {len(values)} values")

    return "".join(out), binds


def _prepare(sql: str, params: Params) -> Tuple[str, Dict[str, Any]]:
    if params is None:
        params = ()
    if isinstance(params, Mapping):
        statement, _ = _bind_placeholders(sql, None)
        return statement, dict(params)
    if isinstance(params, (str, bytes)):
        raise TypeError("params must be a sequence or a mapping, not a string")
    return _bind_placeholders(sql, list(params))


def _to_int(value: Any) -> int:
    """
    id 값을 정수로 변환합니다. 변환할 수 없으면 앞쪽 숫자만 쓰고, 숫자가 없으면 0.
    ("12abc" -> 12, "abc" -> 0, None -> 0)
    """
    try:
        return int(value)
    except (TypeError, ValueError):
        match = _LEADING_INT.match(str(value)) if value is not None else None
        return int(match.group(0)) if match else 0


def _affected_rows(result: CursorResult) -> int:
    # SELECT는 rowcount가 드라이버마다 다르므로 (SQLite: -1) 결과를 소비해서 센다
    if result.returns_rows:
        return len(result.fetchall())
    return result.rowcount


def _insert_outcome(result: CursorResult) -> Tuple[int, Any]:
    return result.rowcount, result.lastrowid


class Database:
    """
    단일 커넥션 기반 DB 파사드

    - 첫 호출 시 커넥션을 한 번만 만들고 이후 모든 쿼리에 재사용
    - 결과 행은 {컬럼명: 문자열} dict (string_rows=False면 드라이버 타입 그대로)
    - 성공한 쿼리는 (SQL, 소요 시간 ms) 로 쿼리 로그에 누적
    - 드라이버 예외는 QueryError / DatabaseConnectionError 로 감싸서 전달 (kind로 세부 분류)

    한 커넥션을 공유하므로 모든 실행은 RLock으로 직렬화됩니다.
    트랜잭션은 다루지 않으며 커넥션은 AUTOCOMMIT으로 동작합니다.
    """

    def __init__(self, config: Optional[DatabaseConfig] = None, engine: Optional[Engine] = None):
        self.config = config if config is not None else load_database_config()
        self._engine = engine
        self._owns_engine = engine is None
        self._connection: Optional[Connection] = None
        self._lock = threading.RLock()
        self._queries: List[QueryRecord] = []
        self._last_error = NO_ERROR

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------
    def _create_engine(self) -> Engine:
        url = self.config.sqlalchemy_url()
        try:
            return create_engine(
                url,
                echo=self.config.echo,
                pool_pre_ping=self.config.pool_pre_ping,
                pool_recycle=1800,
            )
        except (sa_exc.ArgumentError, sa_exc.NoSuchModuleError, ImportError) as e:
            raise DatabaseConnectionError(f"Cannot create engine for {url.drivername}: {e}", orig=e) from e

    def get_connection(self) -> Connection:
        """
        커넥션을 반환합니다. 아직 없으면 설정값으로 새로 연결합니다.
        """
        if self._connection is not None:
            return self._connection

        with self._lock:
            if self._connection is None:
                if self._engine is None:
                    self._engine = self._create_engine()
                try:
                    conn = self._engine.connect()
                    conn.execution_options(isolation_level="AUTOCOMMIT")
                except sa_exc.DBAPIError as e:
                    self._last_error = self._error_info(e)
                    raise DatabaseConnectionError(f"Cannot connect to database: {e.orig}", orig=e) from e
                self._connection = conn
                logger.info("Database connection established (%s)", self._engine.url.render_as_string())
        return self._connection

    def _discard_connection(self) -> None:
        conn, self._connection = self._connection, None
        if conn is None:
            return
        try:
            conn.close()
        except sa_exc.SQLAlchemyError as e:
            logger.warning("Failed to close invalidated connection: %s", e)

    def close(self) -> None:
        with self._lock:
            self._discard_connection()
            if self._owns_engine and self._engine is not None:
                self._engine.dispose()
                self._engine = None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def _run(self, sql: str, params: Params, consume: Callable[[CursorResult], T]) -> T:
        try:
            statement, binds = _prepare(sql, params)
        except ValueError as e:
            self._last_error = ErrorInfo("HY093", None, str(e))
            metrics.query_errors.labels(kind=ErrorKind.SYNTAX.value).inc()
            raise QueryError(f"Invalid parameters: {e}", sql=sql, kind=ErrorKind.SYNTAX, orig=e) from e

        with self._lock:
            conn = self.get_connection()
            start = time.perf_counter()
            try:
                result = conn.execute(text(statement), binds)
                duration = time.perf_counter() - start
                outcome = consume(result)
            except sa_exc.SQLAlchemyError as e:
                kind = classify_error(e)
                if conn.invalidated or getattr(e, "connection_invalidated", False):
                    # 끊어진 커넥션은 버리고 다음 호출에서 새로 연결
                    kind = ErrorKind.CONNECTION
                    self._discard_connection()
                self._last_error = self._error_info(e)
                metrics.query_errors.labels(kind=kind.value).inc()
                logger.warning("SQL query failed (%s): %s", kind.value, sql)
                cause = getattr(e, "orig", None) or e
                raise QueryError(f"Query failed: {cause}", sql=sql, kind=kind, orig=e) from e

            self._last_error = NO_ERROR
            self._log_query(sql, duration)
            return outcome

    def query(self, sql: str, params: Params = None) -> List[Row]:
        """
        SELECT를 실행하고 전체 결과를 dict 리스트로 반환합니다.
        주의: 기본 설정에서는 모든 값이 문자열입니다 (NULL은 None).
        """
        stringify = self.config.string_rows
        return self._run(
            sql, params,
            lambda r: map_rows(r.mappings().all(), stringify=stringify) if r.returns_rows else [],
        )

    def execute(self, sql: str, params: Params = None) -> int:
        """INSERT / UPDATE / DELETE를 실행하고 영향받은 행 수를 반환합니다."""
        return self._run(sql, params, _affected_rows)

    # 호출부 의미 구분용 별칭
    exec = execute
    count = execute

    def query_one(self, sql: str, params: Params = None) -> Optional[Row]:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def insert(self, table_name: str, data: Mapping[str, Any]) -> Optional[int]:
        """
        data의 키를 컬럼으로 하는 INSERT 문을 만들어 실행합니다.
        영향받은 행이 없으면 None, 아니면 새로 생성된 기본 키를 반환합니다.
        """
        if not data:
            raise ValueError("insert() requires at least one column")
        bad_keys = [k for k in data if not _BIND_NAME.match(str(k))]
        if bad_keys:
            raise ValueError(f"Invalid column names for insert: {bad_keys}")

        columns = ", ".join(self._quote(k) for k in data)
        placeholders = ", ".join(f":{k}" for k in data)
        sql = f"INSERT INTO {self._quote(table_name)} ({columns}) VALUES ({placeholders})"

        affected, last_id = self._run(sql, data, _insert_outcome)
        if not affected:
            return None
        return int(last_id) if last_id is not None else None

    def find_one_by_id(self, table_name: str, record_id: Any) -> Optional[Row]:
        sql = f"SELECT * FROM {self._quote(table_name)} WHERE id = ?"
        return self.query_one(sql, [_to_int(record_id)])

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def get_last_error(self) -> ErrorInfo:
        return self._last_error

    def get_query_counter(self) -> int:
        return len(self._queries)

    def get_queries(self) -> List[QueryRecord]:
        return list(self._queries)

    def _log_query(self, sql: str, duration: float) -> None:
        # 마이크로초까지만 유지 후 ms로 변환
        duration_ms = round(round(duration, 6) * 1000, 3)

        logger.debug("SQL query: [%s ms] %s", duration_ms, sql)
        metrics.queries.inc()
        metrics.query_latency.observe(duration)
        self._queries.append(QueryRecord(sql=sql, duration_ms=duration_ms))

    def _quote(self, identifier: str) -> str:
        # schema.table 형태는 부분별로 인용
        preparer = self.get_connection().dialect.identifier_preparer
        return ".".join(preparer.quote_identifier(part) for part in str(identifier).split("."))

    @staticmethod
    def _error_info(error: sa_exc.SQLAlchemyError) -> ErrorInfo:
        orig = getattr(error, "orig", None) or error
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None) or "HY000"
        return ErrorInfo(sqlstate, driver_error_code(error), str(orig))


# ----------------------------------------------------------------------
# 프로세스 공용 기본 인스턴스
# ----------------------------------------------------------------------
_default_db: Optional[Database] = None
_default_lock = threading.Lock()


def get_database() -> Database:
    """설정 파일/환경 변수 기반의 공용 Database 인스턴스 (프로세스당 하나)."""
    global _default_db
    if _default_db is None:
        with _default_lock:
            if _default_db is None:
                _default_db = Database()
    return _default_db


def reset_database() -> None:
    global _default_db
    with _default_lock:
        if _default_db is not None:
            _default_db.close()
            _default_db = None


def get_connection() -> Connection:
    return get_database().get_connection()


def query(sql: str, params: Params = None) -> List[Row]:
    return get_database().query(sql, params)


def execute(sql: str, params: Params = None) -> int:
    return get_database().execute(sql, params)


def count(sql: str, params: Params = None) -> int:
    return get_database().count(sql, params)


def query_one(sql: str, params: Params = None) -> Optional[Row]:
    return get_database().query_one(sql, params)


def insert(table_name: str, data: Mapping[str, Any]) -> Optional[int]:
    return get_database().insert(table_name, data)


def find_one_by_id(table_name: str, record_id: Any) -> Optional[Row]:
    return get_database().find_one_by_id(table_name, record_id)


def get_last_error() -> ErrorInfo:
    return get_database().get_last_error()


def get_query_counter() -> int:
    return get_database().get_query_counter()


def get_queries() -> List[QueryRecord]:
    return get_database().get_queries()

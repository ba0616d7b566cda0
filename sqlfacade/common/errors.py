from enum import Enum
from typing import Optional

from sqlalchemy import exc as sa_exc


class ErrorKind(str, Enum):
    CONNECTION = "CONNECTION"
    CONSTRAINT = "CONSTRAINT"
    TIMEOUT = "TIMEOUT"
    SYNTAX = "SYNTAX"
    UNKNOWN = "UNKNOWN"


class DatabaseError(Exception):
    """
    DB 계층의 공통 예외.
    호출자는 이 타입 하나만 잡으면 되고, 세부 분류가 필요하면 `kind`를 확인합니다.
    원본 드라이버 예외는 `orig`와 `__cause__`로 보존됩니다.
    """

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN, orig: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.orig = orig


class DatabaseConnectionError(DatabaseError):
    def __init__(self, message: str, orig: Optional[BaseException] = None):
        super().__init__(message, kind=ErrorKind.CONNECTION, orig=orig)


class QueryError(DatabaseError):
    def __init__(self, message: str, sql: str, kind: ErrorKind = ErrorKind.UNKNOWN,
                 orig: Optional[BaseException] = None):
        super().__init__(message, kind=kind, orig=orig)
        self.sql = sql


class ConfigurationError(DatabaseError):
    pass


# MySQL 서버/클라이언트 에러 코드 -> 분류
_MYSQL_CODES = {
    # 연결 계열 (2003: can't connect, 2006: gone away, 2013: lost connection)
    1040: ErrorKind.CONNECTION, 1045: ErrorKind.CONNECTION, 1049: ErrorKind.CONNECTION,
    2002: ErrorKind.CONNECTION, 2003: ErrorKind.CONNECTION, 2006: ErrorKind.CONNECTION,
    2013: ErrorKind.CONNECTION,
    # 제약 조건 (중복 키, FK, NOT NULL)
    1048: ErrorKind.CONSTRAINT, 1062: ErrorKind.CONSTRAINT, 1216: ErrorKind.CONSTRAINT,
    1217: ErrorKind.CONSTRAINT, 1451: ErrorKind.CONSTRAINT, 1452: ErrorKind.CONSTRAINT,
    # 타임아웃 (lock wait, max_execution_time)
    1205: ErrorKind.TIMEOUT, 3024: ErrorKind.TIMEOUT,
    # 문법/스키마 (syntax, unknown table/column)
    1054: ErrorKind.SYNTAX, 1064: ErrorKind.SYNTAX, 1146: ErrorKind.SYNTAX,
}

_TIMEOUT_WORDS = ("timeout", "timed out", "database is locked", "lock wait")
_SYNTAX_WORDS = ("syntax error", "no such table", "no such column", "incomplete input", "unrecognized token",
                 "bind parameter")
_CONNECTION_WORDS = ("unable to open", "can't connect", "connection refused", "server has gone away",
                     "lost connection", "server closed the connection")


def driver_error_code(error: BaseException) -> Optional[int]:
    """DBAPI 예외의 첫 번째 인자가 정수이면 드라이버 에러 코드로 간주합니다 (PyMySQL 방식)."""
    orig = getattr(error, "orig", None) or error
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def classify_error(error: BaseException) -> ErrorKind:
    """
    SQLAlchemy/DBAPI 예외를 ErrorKind로 분류합니다.

    순서:
    1. MySQL 에러 코드
    2. 끊어진 커넥션 여부 (connection_invalidated)
    3. SQLAlchemy 예외 클래스
    4. 메시지 키워드 (SQLite는 대부분 OperationalError 하나로 뭉쳐서 올라옴)
    """
    code = driver_error_code(error)
    if code in _MYSQL_CODES:
        return _MYSQL_CODES[code]

    if getattr(error, "connection_invalidated", False):
        return ErrorKind.CONNECTION

    if isinstance(error, sa_exc.IntegrityError):
        return ErrorKind.CONSTRAINT
    if isinstance(error, sa_exc.ProgrammingError):
        return ErrorKind.SYNTAX
    if isinstance(error, sa_exc.TimeoutError):
        return ErrorKind.TIMEOUT

    message = str(getattr(error, "orig", None) or error).lower()
    if any(word in message for word in _TIMEOUT_WORDS):
        return ErrorKind.TIMEOUT
    if any(word in message for word in _SYNTAX_WORDS):
        return ErrorKind.SYNTAX
    if any(word in message for word in _CONNECTION_WORDS):
        return ErrorKind.CONNECTION
    if isinstance(error, sa_exc.InterfaceError):
        return ErrorKind.CONNECTION

    return ErrorKind.UNKNOWN

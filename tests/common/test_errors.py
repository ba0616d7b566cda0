import pytest
from sqlalchemy import exc as sa_exc

from sqlfacade.common.errors import (
    DatabaseConnectionError,
    DatabaseError,
    ErrorKind,
    QueryError,
    classify_error,
    driver_error_code,
)


class FakeMySQLError(Exception):
    """PyMySQL처럼 (code, message) 인자를 갖는 DBAPI 예외"""


@pytest.mark.parametrize(
    "error, expected",
    [
        (sa_exc.OperationalError("SELECT 1", {}, FakeMySQLError(2006, "MySQL server has gone away")), ErrorKind.CONNECTION),
        (sa_exc.IntegrityError("INSERT", {}, FakeMySQLError(1062, "Duplicate entry 'a' for key 'email'")), ErrorKind.CONSTRAINT),
        (sa_exc.OperationalError("UPDATE", {}, FakeMySQLError(1205, "Lock wait timeout exceeded")), ErrorKind.TIMEOUT),
        (sa_exc.ProgrammingError("SELEC", {}, FakeMySQLError(1064, "You have an error in your SQL syntax")), ErrorKind.SYNTAX),
        (sa_exc.ProgrammingError("SELECT", {}, FakeMySQLError(1146, "Table 'app.nope' doesn't exist")), ErrorKind.SYNTAX),
    ],
)
def test_classify_mysql_codes(error, expected):
    assert classify_error(error) == expected


def test_classify_by_exception_class():
    assert classify_error(sa_exc.IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: users.email"))) == ErrorKind.CONSTRAINT
    assert classify_error(sa_exc.ProgrammingError("SELECT", {}, Exception("relation does not exist"))) == ErrorKind.SYNTAX


def test_classify_sqlite_messages():
    assert classify_error(sa_exc.OperationalError("SELEC", {}, Exception('near "SELEC": syntax error'))) == ErrorKind.SYNTAX
    assert classify_error(sa_exc.OperationalError("INSERT", {}, Exception("database is locked"))) == ErrorKind.TIMEOUT
    assert classify_error(sa_exc.OperationalError("", {}, Exception("unable to open database file"))) == ErrorKind.CONNECTION
    assert classify_error(sa_exc.OperationalError("", {}, Exception("disk I/O error"))) == ErrorKind.UNKNOWN


def test_classify_invalidated_connection():
    error = sa_exc.OperationalError("SELECT 1", {}, Exception("boom"), connection_invalidated=True)

    assert classify_error(error) == ErrorKind.CONNECTION


def test_driver_error_code():
    assert driver_error_code(sa_exc.OperationalError("", {}, FakeMySQLError(2013, "Lost connection"))) == 2013
    assert driver_error_code(sa_exc.OperationalError("", {}, Exception("no code"))) is None


def test_error_hierarchy():
    cause = Exception("x")
    conn_err = DatabaseConnectionError("cannot connect", orig=cause)
    query_err = QueryError("failed", sql="SELECT 1", kind=ErrorKind.TIMEOUT)

    assert isinstance(conn_err, DatabaseError)
    assert conn_err.kind == ErrorKind.CONNECTION
    assert conn_err.orig is cause
    assert isinstance(query_err, DatabaseError)
    assert query_err.kind == ErrorKind.TIMEOUT
    assert query_err.sql == "SELECT 1"

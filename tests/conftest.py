import pytest
from sqlalchemy import create_engine, pool

from sqlfacade.common.db import Database
from sqlfacade.config.database import DatabaseConfig

# 테스팅을 위한 SQLite 인메모리 엔진 (StaticPool로 단일 커넥션 공유)
TEST_DATABASE_URL = "sqlite://"

USERS_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT UNIQUE
)
"""


@pytest.fixture
def test_engine():
    """테스트마다 새 인메모리 DB 엔진 생성 및 users 테이블 초기화"""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=pool.StaticPool,
    )
    with engine.begin() as conn:
        conn.exec_driver_sql(USERS_DDL)
    yield engine
    engine.dispose()


@pytest.fixture
def db(test_engine):
    """각 테스트마다 독립된 Database 파사드를 제공하는 피스처"""
    database = Database(config=DatabaseConfig(url=TEST_DATABASE_URL), engine=test_engine)
    yield database
    database.close()

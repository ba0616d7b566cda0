import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from sqlalchemy.engine import URL, make_url

from sqlfacade.common.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/database.yaml"

# MySQL 계열 드라이버는 세션 인코딩을 URL의 charset으로 지정
_UTF8_QUERY = {"charset": "utf8mb4"}


@dataclass
class DatabaseConfig:
    """
    DB 접속 설정
    - host / name / username / password 는 첫 연결 시점에 필수
    - url 이 주어지면 나머지 접속 필드보다 우선
    """
    host: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    port: Optional[int] = None
    driver: str = "mysql+pymysql"
    url: Optional[str] = None

    # 결과 행의 값을 문자열로 돌려줄지 여부 (False면 드라이버 타입 그대로)
    string_rows: bool = True
    echo: bool = False
    pool_pre_ping: bool = True

    def sqlalchemy_url(self) -> URL:
        if self.url:
            return make_url(self.url)

        missing = [f for f in ("host", "name", "username") if not getattr(self, f)]
        if missing:
            raise ConfigurationError(
                f"Missing database configuration: {', '.join('database.' + m for m in missing)}"
            )

        query = _UTF8_QUERY if self.driver.startswith("mysql") else {}
        return URL.create(
            self.driver,
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.name,
            query=query,
        )


_FIELD_NAMES = set(DatabaseConfig.__dataclass_fields__)

_ENV_OVERRIDES = {
    "DATABASE_URL": "url",
    "DB_HOST": "host",
    "DB_PORT": "port",
    "DB_NAME": "name",
    "DB_USER": "username",
    "DB_PASSWORD": "password",
    "DB_DRIVER": "driver",
}


def _read_yaml_section(config_path: Path) -> Dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse {config_path}: {e}") from e

    if not data:
        return {}
    section = data.get("database") or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"'database' section in {config_path} must be a mapping")
    return {k: v for k, v in section.items() if k in _FIELD_NAMES}


def load_database_config(path: str = DEFAULT_CONFIG_PATH) -> DatabaseConfig:
    """
    YAML 파일의 database 섹션을 읽고, 환경 변수(.env 포함)로 덮어씁니다.
    파일이 없으면 기본값 + 환경 변수만 사용합니다.
    """
    load_dotenv()

    kwargs: Dict[str, Any] = {}
    config_path = Path(path)
    if config_path.exists():
        kwargs.update(_read_yaml_section(config_path))

    for env_name, field_name in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            kwargs[field_name] = value

    if kwargs.get("port") is not None:
        try:
            kwargs["port"] = int(kwargs["port"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid database port: {kwargs['port']!r}") from e

    return DatabaseConfig(**kwargs)

import json
import logging
import os
import sys
from datetime import datetime, timezone


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            log_obj["exc"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, ensure_ascii=False)


def configure_logging(level: str = None, fmt: str = None) -> logging.Logger:
    """
    루트 로거에 stdout 핸들러 하나를 설치합니다.
    LOG_LEVEL (기본 INFO), LOG_FORMAT (json | text) 환경 변수를 따릅니다.
    SQL 쿼리 로그를 보려면 LOG_LEVEL=DEBUG.
    """
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_format = fmt or os.getenv("LOG_FORMAT", "json")

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers = []
    root.addHandler(handler)

    return root

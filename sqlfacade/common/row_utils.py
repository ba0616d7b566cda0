from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional


Row = Dict[str, Optional[str]]


def to_db_string(value: Any) -> Optional[str]:
    """
    DB 컬럼 값을 문자열로 변환합니다. (MySQL 텍스트 프로토콜이 돌려주는 표현과 맞춤)
    NULL은 None으로 유지합니다.
    """
    if value is None or isinstance(value, str):
        return value

    # bool은 int의 하위 타입이므로 먼저 처리 (TINYINT(1) -> "1"/"0")
    if isinstance(value, bool):
        return "1" if value else "0"

    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")

    if isinstance(value, Decimal):
        return format(value, "f")

    if isinstance(value, datetime):
        return value.isoformat(sep=" ")

    if isinstance(value, (date, time)):
        return value.isoformat()

    if isinstance(value, timedelta):
        # MySQL TIME 컬럼은 PyMySQL에서 timedelta로 올라옴
        total = int(value.total_seconds())
        sign = "-" if total < 0 else ""
        hours, rest = divmod(abs(total), 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"

    return str(value)


def map_row(mapping: Mapping[str, Any], stringify: bool = True) -> Dict[str, Any]:
    if not stringify:
        return dict(mapping)
    return {str(k): to_db_string(v) for k, v in mapping.items()}


def map_rows(mappings: Iterable[Mapping[str, Any]], stringify: bool = True) -> List[Dict[str, Any]]:
    """SELECT 결과(RowMapping 목록)를 dict 리스트로 반환합니다."""
    return [map_row(m, stringify=stringify) for m in mappings]

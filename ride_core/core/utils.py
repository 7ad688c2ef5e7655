import json
import math
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import uuid4 as _uuid4


def uuid4() -> str:
    return str(_uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def round2(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def json_default(o):
    if isinstance(o, Decimal):
        return float(o)
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    return str(o)


def json_dumps(obj) -> str:
    return json.dumps(obj, ensure_ascii=False, default=json_default)

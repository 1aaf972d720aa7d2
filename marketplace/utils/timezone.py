from datetime import datetime, timezone as dt_timezone


class TimeZone:
    """UTC-based time helpers shared by models and services"""

    def __init__(self, tz: dt_timezone = dt_timezone.utc) -> None:
        self.tz_info = tz

    def now(self) -> datetime:
        """获取当前时区时间"""
        return datetime.now(self.tz_info)

    def from_datetime(self, t: datetime) -> datetime:
        """
        将 datetime 对象转换为当前时区时间

        Naive values are assumed to already be UTC.
        """
        if t.tzinfo is None:
            return t.replace(tzinfo=self.tz_info)
        return t.astimezone(self.tz_info)

    def from_timestamp(self, ts: int | float) -> datetime:
        """Unix 时间戳转换为当前时区时间"""
        return datetime.fromtimestamp(ts, tz=self.tz_info)

    def to_str(self, t: datetime, format_str: str = '%Y-%m-%d %H:%M:%S') -> str:
        return self.from_datetime(t).strftime(format_str)


timezone = TimeZone()

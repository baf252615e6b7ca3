"""
QuestDB Historical Bar Source
Seeds new bar series from the candle table via the QuestDB HTTP API.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from vibetrading_live.config import QuestDBSettings, get_settings
from vibetrading_live.core.intervals import close_time_for
from vibetrading_live.core.series import Bar, BarSeries

logger = logging.getLogger(__name__)


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class QuestDBBarSource:
    """Historical data collaborator backed by a QuestDB `candles` table."""

    def __init__(
        self,
        settings: Optional[QuestDBSettings] = None,
        table: str = "candles",
    ) -> None:
        settings = settings or get_settings().questdb
        self.http_url = settings.http_url
        self.timeout = settings.query_timeout
        self.table = table

    def query(self, sql: str) -> List[Dict[str, Any]]:
        """
        Execute SQL query via HTTP API.

        Args:
            sql: SQL query string

        Returns:
            List of row dictionaries
        """
        url = f"{self.http_url}/exec"
        try:
            response = requests.get(url, params={"query": sql}, timeout=self.timeout)
            response.raise_for_status()

            data = response.json()
            if "dataset" not in data:
                return []

            column_names = [col["name"] for col in data.get("columns", [])]
            return [dict(zip(column_names, row)) for row in data["dataset"]]

        except requests.RequestException as e:
            logger.error(f"QuestDB query failed: {e}")
            raise

    def build_query(self, symbol: str, interval: str, count: int) -> str:
        return (
            f"SELECT timestamp, open, high, low, close, volume FROM {self.table} "
            f"WHERE symbol = {_quote(symbol)} AND interval = {_quote(interval)} "
            f"ORDER BY timestamp DESC LIMIT {int(count)}"
        )

    async def fetch_recent_bars(self, symbol: str, interval: str, count: int) -> Optional[BarSeries]:
        """Fetch the most recent `count` bars, oldest first."""
        sql = self.build_query(symbol, interval, count)
        rows = await asyncio.to_thread(self.query, sql)

        bars: List[Bar] = []
        for row in reversed(rows):
            start = _parse_timestamp(row["timestamp"])
            bars.append(Bar(
                start_time=start,
                end_time=close_time_for(start, interval),
                open=Decimal(str(row["open"])),
                high=Decimal(str(row["high"])),
                low=Decimal(str(row["low"])),
                close=Decimal(str(row["close"])),
                volume=Decimal(str(row.get("volume") or 0)),
            ))

        logger.info(f"Fetched {len(bars)} historical bars for {symbol}_{interval}")
        return BarSeries(symbol, interval, bars)

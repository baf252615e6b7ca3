"""
Subscription Manager
Reference-counts live candle subscriptions per (symbol, interval).
"""

import asyncio
import logging
from typing import Dict, List, Tuple

from vibetrading_live.core.errors import SubscriptionError
from vibetrading_live.core.ports import MarketDataTransport

logger = logging.getLogger(__name__)

SeriesKey = Tuple[str, str]


class SubscriptionManager:
    """
    Shared subscription ref-counts.

    The transport is subscribed when a key's count goes 0 -> 1 and
    unsubscribed when it drops back to 0. Counts and transport calls for
    all keys are serialized by one lock so concurrent start/stop calls
    cannot interleave a subscribe with an unsubscribe.
    """

    def __init__(self, transport: MarketDataTransport) -> None:
        self._transport = transport
        self._counts: Dict[SeriesKey, int] = {}
        self._lock = asyncio.Lock()

    def count(self, symbol: str, interval: str) -> int:
        """Number of running strategies holding the subscription."""
        return self._counts.get((symbol, interval), 0)

    def is_subscribed(self, symbol: str, interval: str) -> bool:
        return self.count(symbol, interval) > 0

    def active(self) -> List[SeriesKey]:
        return [key for key, count in self._counts.items() if count > 0]

    async def acquire(self, symbol: str, interval: str) -> int:
        """
        Take one reference on a subscription.

        Raises:
            SubscriptionError: If the first subscribe call fails; no
                reference is taken in that case
        """
        key = (symbol, interval)
        async with self._lock:
            count = self._counts.get(key, 0)
            if count == 0:
                try:
                    await self._transport.subscribe(symbol, interval)
                except Exception as e:
                    raise SubscriptionError(f"Subscribe failed: {e}", symbol, interval) from e
                logger.info(f"Subscribed to candles: symbol={symbol}, interval={interval}")
            self._counts[key] = count + 1
            return count + 1

    async def release(self, symbol: str, interval: str) -> int:
        """
        Drop one reference; unsubscribes when the last one goes.

        Unsubscribe failures are logged and the entry is still removed.
        Releasing a key with no references is a no-op.
        """
        key = (symbol, interval)
        async with self._lock:
            count = self._counts.get(key, 0)
            if count == 0:
                return 0
            if count > 1:
                self._counts[key] = count - 1
                return count - 1

            del self._counts[key]
            try:
                await self._transport.unsubscribe(symbol, interval)
                logger.info(f"Unsubscribed from candles: symbol={symbol}, interval={interval}")
            except Exception as e:
                logger.error(f"Error unsubscribing {symbol}_{interval}: {e}")
            return 0

    async def resubscribe_all(self) -> int:
        """
        Re-issue subscribe for every live entry (after a transport reconnect).

        Returns:
            Number of entries resubscribed successfully
        """
        async with self._lock:
            keys = [key for key, count in self._counts.items() if count > 0]
            succeeded = 0
            for symbol, interval in keys:
                try:
                    await self._transport.subscribe(symbol, interval)
                    succeeded += 1
                except Exception as e:
                    logger.error(f"Error resubscribing {symbol}_{interval}: {e}")
            logger.info(f"Resubscribed {succeeded}/{len(keys)} candle streams")
            return succeeded

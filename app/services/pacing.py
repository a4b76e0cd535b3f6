"""
app/services/pacing.py

リクエスト間隔制御

Mapbox Map Matching API のレート制限（300リクエスト/分）を守るため、
前回のレスポンス受信から一定時間が経過するまで次のリクエストを待たせる。

時計とスリープ関数は差し替え可能で、テストでは実時間を待たずに
偽の時計で検証できる。

参照: https://docs.mapbox.com/api/navigation/map-matching/#map-matching-api-restrictions-and-limits
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional


class RequestPacer:
    """
    リクエスト間隔制御

    mark() で前回リクエストの完了時刻を記録し、
    wait() はそこから interval 秒経過するまで待機する。
    mark() が一度も呼ばれていなければ wait() は待機しない。

    Attributes:
        interval (float): リクエスト間の最小間隔（秒）

    使用例:
        pacer = RequestPacer(0.2)
        for batch in batches:
            await pacer.wait()
            await client.match(batch)
            pacer.mark()
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval < 0:
            raise ValueError(f"interval must be >= 0: {interval}")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None

    async def wait(self):
        """前回の mark() から interval 秒経過するまで待機"""
        if self._last is None:
            return
        remaining = self._last + self.interval - self._clock()
        if remaining > 0:
            await self._sleep(remaining)

    def mark(self):
        """リクエスト完了時刻を記録"""
        self._last = self._clock()

    def reset(self):
        """記録をクリア（次の wait() は待機しない）"""
        self._last = None

"""
app/services/orchestrator.py

バッチオーケストレーター

1つの座標列（トラックセグメント）を以下の流れでマッチングする:
1. partition_batches でバッチに分割（末尾の1座標バッチは直前に連結）
2. バッチを1つずつ順番に match_fn へ渡す（並列化しない）
3. リクエスト間に RequestPacer で一定の間隔を空ける
4. 返却されたジオメトリを入力順に連結

いずれかのバッチが失敗した時点で処理を中断し、途中結果は返さない。
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from app.models.common import GeoJSONLineString
from app.services.batching import Batch, Coordinate, partition_batches
from app.services.errors import InsufficientCoordinates, UpstreamError
from app.services.pacing import RequestPacer


logger = logging.getLogger(__name__)


# =============================================================================
# 定数定義
# =============================================================================

# 1リクエストあたりの最大座標数（Map Matching API の上限）
DEFAULT_BATCH_SIZE = 100

# リクエスト間隔（秒）
# 300リクエスト/分の制限に対し200msで運用。1.0秒にするとより保守的
DEFAULT_REQUEST_DELAY = 0.2


# 型エイリアス
MatchFn = Callable[[Batch], Awaitable[list[GeoJSONLineString]]]
MatchResult = list[GeoJSONLineString]


# =============================================================================
# セグメント処理結果
# =============================================================================

@dataclass
class SegmentOutcome:
    """
    セグメント単位の処理結果

    Attributes:
        index: ファイル内のセグメント番号
        sequence: 元の座標列
        result: マッチング結果（失敗・スキップ時は空）
        error: 発生した例外（成功時はNone）
    """
    index: int
    sequence: list[Coordinate]
    result: MatchResult = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def skipped(self) -> bool:
        return isinstance(self.error, InsufficientCoordinates)

    @property
    def failed(self) -> bool:
        return isinstance(self.error, UpstreamError)


# =============================================================================
# オーケストレーター
# =============================================================================

class BatchOrchestrator:
    """
    バッチオーケストレーター

    設計根拠:
    - バッチは厳密に逐次処理（Mapboxのレート制限を守るため並列化しない）
    - 失敗時はリトライせず即座に中断（fail-fast）
    - 間隔制御は RequestPacer に委譲し、テストでは偽の時計を注入できる
    - 直近の成功結果を last_result に保持し、エクスポートに使用する

    Attributes:
        batch_size (int): 1バッチあたりの最大座標数
        request_delay (float): リクエスト間隔（秒）
        last_result (Optional[MatchResult]): 直近の成功したマッチング結果

    使用例:
        orchestrator = BatchOrchestrator(batch_size=100, request_delay=0.2)
        result = await orchestrator.match_sequence(coordinates, client.match)
    """

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        request_delay: float = DEFAULT_REQUEST_DELAY,
        pacer_factory: Callable[[float], RequestPacer] = RequestPacer,
    ):
        if batch_size < 2:
            raise ValueError(f"batch_size must be >= 2: {batch_size}")
        if request_delay < 0:
            raise ValueError(f"request_delay must be >= 0: {request_delay}")

        self.batch_size = batch_size
        self.request_delay = request_delay
        self._pacer_factory = pacer_factory
        self.last_result: Optional[MatchResult] = None

    def new_pacer(self) -> RequestPacer:
        """このオーケストレーターの間隔設定でペーサーを生成"""
        return self._pacer_factory(self.request_delay)

    async def match_sequence(
        self,
        sequence: list[Coordinate],
        match_fn: MatchFn,
        pacer: Optional[RequestPacer] = None,
    ) -> MatchResult:
        """
        1つの座標列をマッチング

        Args:
            sequence: 座標列 [(経度, 緯度), ...]
            match_fn: 1バッチをマッチングする非同期関数
            pacer: 共有するペーサー（複数セグメントを続けて処理する場合）

        Returns:
            MatchResult: マッチング済みジオメトリ（入力順）

        Raises:
            InsufficientCoordinates: 座標が1つだけの場合（リクエストは送信しない）
            UpstreamError: いずれかのバッチのマッチングに失敗
        """
        if not sequence:
            return []

        batches = partition_batches(sequence, self.batch_size)
        pacer = pacer or self.new_pacer()

        logger.info(
            "Matching %d coordinates in %d batch(es).", len(sequence), len(batches)
        )

        result: MatchResult = []
        for i, batch in enumerate(batches):
            await pacer.wait()
            try:
                result.extend(await match_fn(batch))
            except UpstreamError:
                logger.error("Batch %d/%d failed; aborting sequence.", i + 1, len(batches))
                raise
            except Exception as e:
                logger.error("Batch %d/%d failed; aborting sequence: %s", i + 1, len(batches), e)
                raise UpstreamError(f"Map matching failed: {e}") from e
            finally:
                pacer.mark()

        self.last_result = result
        return result

    async def match_segments(
        self,
        sequences: list[list[Coordinate]],
        match_fn: MatchFn,
    ) -> list[SegmentOutcome]:
        """
        複数セグメントを順番にマッチング

        各セグメントは独立して処理する:
        - 座標数不足のセグメントはスキップ（警告ログ）
        - Mapbox API エラーのセグメントは失敗として記録し、次のセグメントへ進む

        成功したセグメントがあれば、それらを連結した結果を last_result に保持する。

        Args:
            sequences: セグメントごとの座標列
            match_fn: 1バッチをマッチングする非同期関数

        Returns:
            セグメントごとの処理結果（入力順）
        """
        pacer = self.new_pacer()
        outcomes = []

        for index, sequence in enumerate(sequences):
            outcome = SegmentOutcome(index=index, sequence=sequence)
            try:
                outcome.result = await self.match_sequence(sequence, match_fn, pacer=pacer)
            except InsufficientCoordinates as e:
                logger.warning("Segment %d skipped: %s", index, e)
                outcome.error = e
            except UpstreamError as e:
                logger.error("Segment %d failed: %s", index, e)
                outcome.error = e
            outcomes.append(outcome)

        combined = [
            geometry
            for outcome in outcomes
            if outcome.error is None
            for geometry in outcome.result
        ]
        if combined:
            self.last_result = combined

        return outcomes

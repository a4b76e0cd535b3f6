"""
app/services/batching.py

座標列のバッチ分割

Map Matching API は1リクエストあたり最大100座標までしか受け付けないため、
トラックの座標列を上限サイズ以下の連続したバッチに分割する。

参照: https://docs.mapbox.com/api/navigation/map-matching/
「A semicolon-separated list of {longitude},{latitude} coordinate pairs
 to visit in order. There can be between 2 and 100 coordinates.」
"""
import logging

from app.services.errors import InsufficientCoordinates


logger = logging.getLogger(__name__)

# 型エイリアス
Coordinate = tuple[float, float]
Batch = list[Coordinate]

# マッチングに必要な最小座標数
MIN_BATCH_LENGTH = 2


def partition_batches(sequence: list[Coordinate], batch_size: int) -> list[Batch]:
    """
    座標列をバッチに分割

    アルゴリズム:
    1. 先頭から batch_size 個ずつ区切る（順序維持・重複なし・欠落なし）
    2. 末尾のバッチが2座標未満の場合、直前のバッチに連結する
       （直前のバッチは batch_size を超えるが、これは許容する）
    3. 直前のバッチがない場合（全体で2座標未満）は警告を出して例外

    Args:
        sequence: 座標列 [(経度, 緯度), ...]
        batch_size: 1バッチあたりの最大座標数

    Returns:
        バッチのリスト（空の座標列なら空リスト）

    Raises:
        ValueError: batch_size が2未満
        InsufficientCoordinates: 座標列が1座標のみ

    使用例:
        >>> [len(b) for b in partition_batches(coords_201, 100)]
        [100, 101]
    """
    if batch_size < MIN_BATCH_LENGTH:
        raise ValueError(f"batch_size must be >= {MIN_BATCH_LENGTH}: {batch_size}")

    batches: list[Batch] = [
        list(sequence[i:i + batch_size])
        for i in range(0, len(sequence), batch_size)
    ]

    if batches and len(batches[-1]) < MIN_BATCH_LENGTH:
        leftover = batches.pop()
        if not batches:
            logger.warning("Skipped a sequence with only %d coordinate(s).", len(leftover))
            raise InsufficientCoordinates(len(leftover))
        # 直前のバッチに連結
        batches[-1].extend(leftover)

    return batches

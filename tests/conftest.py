"""
tests/conftest.py

pytest共通フィクスチャ

参照:
- pytest fixtures: https://docs.pytest.org/en/stable/fixture.html
- httpx TestClient: https://www.python-httpx.org/advanced/testing/
- FastAPI Testing: https://fastapi.tiangolo.com/tutorial/testing/
"""
import pytest
from unittest.mock import AsyncMock

from httpx import AsyncClient, ASGITransport

from app.main import app
from app.models.common import GeoJSONLineString
from app.services.mapbox_client import MapboxClient
from app.services.orchestrator import BatchOrchestrator
from app.services.pacing import RequestPacer


# =============================================================================
# 偽の時計
# =============================================================================

class FakeClock:
    """
    テスト用の偽の時計

    sleep() は実時間を待たずに時刻を進め、待機時間を記録する。
    """

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_clock():
    """偽の時計"""
    return FakeClock()


@pytest.fixture
def orchestrator(fake_clock):
    """偽の時計を使うBatchOrchestrator（batch_size=100, delay=200ms）"""
    return BatchOrchestrator(
        batch_size=100,
        request_delay=0.2,
        pacer_factory=lambda interval: RequestPacer(
            interval, clock=fake_clock, sleep=fake_clock.sleep
        ),
    )


# =============================================================================
# テストデータ
# =============================================================================

def make_track(count: int, start=(-97.1, 31.5)) -> list[tuple[float, float]]:
    """北東に進む count 点のトラックを作成"""
    lon, lat = start
    return [(round(lon + i * 0.0001, 6), round(lat + i * 0.0001, 6)) for i in range(count)]


def echo_geometry(batch) -> GeoJSONLineString:
    """バッチの座標をそのままジオメトリにする（決定的なマッチング結果）"""
    return GeoJSONLineString(coordinates=[list(coord) for coord in batch])


# =============================================================================
# モッククライアント
# =============================================================================

@pytest.fixture
def mock_mapbox_client():
    """MapboxClientのモック（バッチをそのまま返す）"""
    client = AsyncMock(spec=MapboxClient)

    async def match(batch):
        return [echo_geometry(batch)]

    client.match.side_effect = match
    client.validate_token.return_value = True
    client.close.return_value = None

    return client


# =============================================================================
# FastAPIテストクライアント
# =============================================================================

@pytest.fixture
async def async_client(orchestrator, mock_mapbox_client):
    """
    非同期HTTPテストクライアント

    app.stateに必要なオブジェクトを注入してテスト実行。
    未処理の例外もレスポンスとして確認できるよう raise_app_exceptions=False とする。
    """
    app.state.orchestrator = orchestrator
    app.state.mapbox_client = mock_mapbox_client

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# =============================================================================
# テスト用定数
# =============================================================================

# テキサス州ウェーコ周辺
WACO = (-97.1467, 31.5493)
WACO_NORTH = (-97.1460, 31.5510)

GPX_TWO_SEGMENTS = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <trk>
    <name>Morning ride</name>
    <trkseg>
      <trkpt lat="31.5000" lon="-97.1000"><ele>120.0</ele></trkpt>
      <trkpt lat="31.5010" lon="-97.1010"><ele>121.0</ele></trkpt>
      <trkpt lat="31.5020" lon="-97.1020"><ele>122.0</ele></trkpt>
    </trkseg>
    <trkseg>
      <trkpt lat="31.6000" lon="-97.2000"></trkpt>
      <trkpt lat="31.6010" lon="-97.2010"></trkpt>
    </trkseg>
  </trk>
</gpx>
"""

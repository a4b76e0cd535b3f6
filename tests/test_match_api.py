"""
tests/test_match_api.py

マップマッチングAPI（POST /api/match, POST /api/match/upload, GET /api/export）のテスト
"""
import json
import pytest

from app.services.errors import UpstreamError
from tests.conftest import GPX_TWO_SEGMENTS, WACO, WACO_NORTH, echo_geometry, make_track


class TestMatchValidation:
    """バリデーションエラーのテスト"""

    async def test_single_coordinate(self, async_client, mock_mapbox_client):
        """1座標 → 400、Mapbox APIは呼ばない"""
        response = await async_client.post(
            "/api/match", json={"coordinates": [list(WACO)]}
        )

        assert response.status_code == 400
        assert "At least 2 coordinates" in response.json()["error"]
        mock_mapbox_client.match.assert_not_called()

    async def test_empty_coordinates(self, async_client):
        """空配列 → 400"""
        response = await async_client.post("/api/match", json={"coordinates": []})
        assert response.status_code == 400

    async def test_missing_coordinates(self, async_client):
        """coordinates がない → 400"""
        response = await async_client.post("/api/match", json={})
        assert response.status_code == 400
        assert "error" in response.json()

    async def test_out_of_range(self, async_client):
        """範囲外の緯度 → 400"""
        response = await async_client.post(
            "/api/match", json={"coordinates": [[-97.1, 95.0], list(WACO)]}
        )
        assert response.status_code == 400

    async def test_incomplete_position(self, async_client):
        """経度のみの座標 → 400"""
        response = await async_client.post(
            "/api/match", json={"coordinates": [[-97.1], list(WACO)]}
        )
        assert response.status_code == 400


class TestMatchCoordinates:
    """POST /api/match のテスト"""

    async def test_basic(self, async_client):
        """2座標 → マッチング結果1件"""
        response = await async_client.post(
            "/api/match", json={"coordinates": [list(WACO), list(WACO_NORTH)]}
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["matchedGeometries"]) == 1
        assert data["matchedGeometries"][0]["type"] == "LineString"
        assert data["matchedGeometries"][0]["coordinates"] == [list(WACO), list(WACO_NORTH)]

    async def test_batches_in_order(self, async_client, mock_mapbox_client):
        """250座標 → 3バッチ [100, 100, 50] を順番に送信"""
        track = make_track(250)
        response = await async_client.post(
            "/api/match", json={"coordinates": [list(c) for c in track]}
        )

        assert response.status_code == 200
        sizes = [len(call.args[0]) for call in mock_mapbox_client.match.call_args_list]
        assert sizes == [100, 100, 50]
        assert len(response.json()["matchedGeometries"]) == 3

    async def test_leftover_merged(self, async_client, mock_mapbox_client):
        """201座標 → 2バッチ [100, 101]"""
        track = make_track(201)
        response = await async_client.post(
            "/api/match", json={"coordinates": [list(c) for c in track]}
        )

        assert response.status_code == 200
        sizes = [len(call.args[0]) for call in mock_mapbox_client.match.call_args_list]
        assert sizes == [100, 101]

    async def test_upstream_error(self, async_client, mock_mapbox_client):
        """Mapbox APIエラー → 500（詳細は返さない）、途中結果もなし"""
        mock_mapbox_client.match.side_effect = UpstreamError(
            "Mapbox API error: InvalidToken", status_code=401, code="InvalidToken"
        )
        response = await async_client.post(
            "/api/match", json={"coordinates": [list(c) for c in make_track(250)]}
        )

        assert response.status_code == 500
        data = response.json()
        assert "matchedGeometries" not in data
        assert "InvalidToken" not in data["error"]
        assert mock_mapbox_client.match.call_count == 1

    async def test_invalid_match_result(self, async_client, mock_mapbox_client):
        """マッチング結果が不正 → 500（途中結果なし）"""
        mock_mapbox_client.match.side_effect = None
        mock_mapbox_client.match.return_value = None  # 反復できない戻り値

        response = await async_client.post(
            "/api/match", json={"coordinates": [list(WACO), list(WACO_NORTH)]}
        )

        assert response.status_code == 500
        assert "matchedGeometries" not in response.json()

    async def test_internal_error(self, async_client, orchestrator, monkeypatch):
        """予期しない例外 → 500 Internal server error"""
        async def broken(*args, **kwargs):
            raise RuntimeError("secret detail")

        monkeypatch.setattr(orchestrator, "match_sequence", broken)

        response = await async_client.post(
            "/api/match", json={"coordinates": [list(WACO), list(WACO_NORTH)]}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}


class TestMatchUpload:
    """POST /api/match/upload のテスト"""

    async def test_gpx_upload(self, async_client):
        """GPX（2セグメント）→ セグメントごとにマッチング"""
        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("ride.gpx", GPX_TWO_SEGMENTS.encode(), "application/gpx+xml")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["format"] == "gpx"
        assert len(data["originalTracks"]) == 2
        assert [s["status"] for s in data["segments"]] == ["matched", "matched"]
        assert [s["coordinateCount"] for s in data["segments"]] == [3, 2]
        assert len(data["matchedGeometries"]) == 2
        assert data["bounds"] == [-97.201, 31.5, -97.1, 31.601]

    async def test_geojson_upload(self, async_client):
        """GeoJSON のアップロード"""
        geojson = {
            "type": "Feature",
            "properties": {},
            "geometry": {"type": "LineString", "coordinates": [list(WACO), list(WACO_NORTH)]},
        }
        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("route.geojson", json.dumps(geojson).encode(), "application/geo+json")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["format"] == "geojson"
        assert data["segments"][0]["status"] == "matched"

    async def test_format_field(self, async_client):
        """拡張子がなくても format で形式を指定できる"""
        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("upload", GPX_TWO_SEGMENTS.encode(), "text/xml")},
            data={"format": "gpx"},
        )
        assert response.status_code == 200

    async def test_short_segment_skipped(self, async_client):
        """1座標のセグメントはスキップ、他は処理を続ける"""
        geojson = {
            "type": "MultiLineString",
            "coordinates": [[list(WACO)], [list(WACO), list(WACO_NORTH)]],
        }
        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("route.geojson", json.dumps(geojson).encode(), "application/json")},
        )

        assert response.status_code == 200
        segments = response.json()["segments"]
        assert segments[0]["status"] == "skipped"
        assert segments[0]["matchedGeometries"] == []
        assert segments[1]["status"] == "matched"

    async def test_failed_segment(self, async_client, mock_mapbox_client):
        """Mapbox APIエラーのセグメントは failed、後続セグメントは処理する"""
        calls = []

        async def match(batch):
            calls.append(batch)
            if len(calls) == 1:
                raise UpstreamError("Mapbox API error: NoMatch", code="NoMatch")
            return [echo_geometry(batch)]

        mock_mapbox_client.match.side_effect = match

        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("ride.gpx", GPX_TWO_SEGMENTS.encode(), "application/gpx+xml")},
        )

        assert response.status_code == 200
        data = response.json()
        assert [s["status"] for s in data["segments"]] == ["failed", "matched"]
        assert data["segments"][0]["error"] is not None
        assert len(data["matchedGeometries"]) == 1

    async def test_unsupported_format(self, async_client):
        """未対応の拡張子 → 400"""
        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400

    async def test_empty_file(self, async_client):
        """空ファイル → 400"""
        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("ride.gpx", b"   ", "application/gpx+xml")},
        )
        assert response.status_code == 400

    async def test_malformed_gpx(self, async_client, mock_mapbox_client):
        """壊れたGPX → 400、Mapbox APIは呼ばない"""
        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("ride.gpx", b"<gpx><trk>", "application/gpx+xml")},
        )

        assert response.status_code == 400
        assert "GPX" in response.json()["error"]
        mock_mapbox_client.match.assert_not_called()

    @pytest.mark.parametrize("position", [{"a": 1, "b": 2}, "12"])
    async def test_malformed_geojson_position(self, async_client, mock_mapbox_client, position):
        """配列・数値でない座標を含むGeoJSON → 400"""
        geojson = {"type": "LineString", "coordinates": [position, list(WACO)]}
        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("route.geojson", json.dumps(geojson).encode(), "application/geo+json")},
        )

        assert response.status_code == 400
        assert "error" in response.json()
        mock_mapbox_client.match.assert_not_called()

    async def test_file_too_large(self, async_client, monkeypatch, mock_mapbox_client):
        """MAX_UPLOAD_BYTES を超えるファイル → 400"""
        from app.main import settings
        monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 10)

        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("ride.gpx", GPX_TWO_SEGMENTS.encode(), "application/gpx+xml")},
        )

        assert response.status_code == 400
        assert "too large" in response.json()["error"]
        mock_mapbox_client.match.assert_not_called()

    async def test_not_utf8(self, async_client, mock_mapbox_client):
        """UTF-8でないファイル → 400"""
        content = GPX_TWO_SEGMENTS.replace("Morning ride", "Café").encode("latin-1")
        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("ride.gpx", content, "application/gpx+xml")},
        )

        assert response.status_code == 400
        assert "UTF-8" in response.json()["error"]
        mock_mapbox_client.match.assert_not_called()

    async def test_invalid_match_result_marks_segment_failed(self, async_client, mock_mapbox_client):
        """マッチング結果が不正なセグメントは failed（アップロード全体は200）"""
        mock_mapbox_client.match.side_effect = None
        mock_mapbox_client.match.return_value = None

        response = await async_client.post(
            "/api/match/upload",
            files={"file": ("ride.gpx", GPX_TWO_SEGMENTS.encode(), "application/gpx+xml")},
        )

        assert response.status_code == 200
        assert [s["status"] for s in response.json()["segments"]] == ["failed", "failed"]


class TestExport:
    """GET /api/export のテスト"""

    async def test_export_without_match(self, async_client):
        """マッチング前のエクスポート → 404"""
        response = await async_client.get("/api/export")

        assert response.status_code == 404
        assert response.json()["error"] == "No matched route to export."

    async def test_export_after_match(self, async_client):
        """マッチング後は MultiLineString の GeoJSON をダウンロード"""
        await async_client.post(
            "/api/match", json={"coordinates": [list(c) for c in make_track(150)]}
        )
        response = await async_client.get("/api/export")

        assert response.status_code == 200
        assert "matched-route.geojson" in response.headers["content-disposition"]
        data = response.json()
        assert data["type"] == "Feature"
        assert data["geometry"]["type"] == "MultiLineString"
        assert [len(line) for line in data["geometry"]["coordinates"]] == [100, 50]

    async def test_export_keeps_last_success(self, async_client, mock_mapbox_client):
        """失敗したマッチングは直近の成功結果を上書きしない"""
        await async_client.post(
            "/api/match", json={"coordinates": [list(WACO), list(WACO_NORTH)]}
        )
        mock_mapbox_client.match.side_effect = UpstreamError("boom")
        await async_client.post(
            "/api/match", json={"coordinates": [list(c) for c in make_track(10)]}
        )

        response = await async_client.get("/api/export")
        assert response.status_code == 200
        assert response.json()["geometry"]["coordinates"] == [[list(WACO), list(WACO_NORTH)]]

"""
app/routers/match.py

マップマッチングAPIエンドポイント

POST /api/match         - 座標列をマッチング
POST /api/match/upload  - GPX / GeoJSON ファイルを解析してマッチング
GET  /api/export        - 直近のマッチング結果を GeoJSON でダウンロード

公式ドキュメント:
- FastAPI Request Body: https://fastapi.tiangolo.com/tutorial/body/
- FastAPI Request Files: https://fastapi.tiangolo.com/tutorial/request-files/
- FastAPI Dependencies: https://fastapi.tiangolo.com/tutorial/dependencies/
"""
import logging
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from app.models import (
    ErrorResponse,
    MatchRequest,
    MatchResponse,
    SegmentResult,
    SegmentStatus,
    UploadMatchResponse,
)
from app.services.errors import NoMatchedRoute, ParseError
from app.services.exporter import (
    EXPORT_FILENAME,
    EXPORT_MEDIA_TYPE,
    build_export_feature,
    compute_bounds,
)
from app.services.mapbox_client import MapboxClient
from app.services.orchestrator import BatchOrchestrator
from app.services.track_parser import detect_format, parse_track


logger = logging.getLogger(__name__)


# =============================================================================
# ルーター定義
# =============================================================================

router = APIRouter(prefix="/api", tags=["match"])


# ユーザー向けメッセージ（詳細はログにのみ出力）
MSG_INSUFFICIENT = "At least 2 coordinates are required for map matching."
MSG_MATCH_FAILED = "An error occurred during map matching. Please try again."
MSG_EMPTY_FILE = "File is empty."


# =============================================================================
# 依存性注入
# =============================================================================

def get_orchestrator():
    """
    BatchOrchestratorの依存性注入

    実際のインスタンスはapp.stateに格納されている。

    参照: https://fastapi.tiangolo.com/tutorial/dependencies/
    """
    from app.main import app
    return app.state.orchestrator


def get_mapbox_client():
    """Mapboxクライアントの依存性注入"""
    from app.main import app
    return app.state.mapbox_client


def get_settings():
    """アプリケーション設定の依存性注入"""
    from app.main import settings
    return settings


def error_response(status_code: int, message: str) -> JSONResponse:
    """{"error": message} 形式のエラーレスポンスを作成"""
    return JSONResponse(status_code=status_code, content={"error": message})


# =============================================================================
# エンドポイント
# =============================================================================

@router.post(
    "/match",
    response_model=MatchResponse,
    summary="座標列のマップマッチング",
    description="""
座標列を100座標ずつのバッチに分割して Mapbox Map Matching API に送信し、
マッチング済みジオメトリを入力順に返却する。

- バッチは順番に送信し、リクエスト間に一定の間隔を空ける
- 末尾のバッチが1座標だけの場合は直前のバッチに連結する
- いずれかのバッチが失敗した場合は全体を失敗とする
    """,
    responses={
        200: {"description": "成功"},
        400: {"model": ErrorResponse, "description": "座標数不足・座標値不正"},
        500: {"model": ErrorResponse, "description": "Mapbox APIエラー"},
    },
)
async def match_coordinates(
    body: MatchRequest,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
    mapbox_client: MapboxClient = Depends(get_mapbox_client),
):
    """
    マップマッチングAPI

    処理フロー:
    1. 座標数チェック（2未満は400）
    2. BatchOrchestratorでバッチ分割・送信・連結
    3. レスポンス整形
    """
    if len(body.coordinates) < 2:
        logger.warning(
            "Received /api/match request with insufficient coordinates: %s",
            body.coordinates,
        )
        return error_response(400, MSG_INSUFFICIENT)

    logger.info("Processing %d coordinates for map matching.", len(body.coordinates))

    # UpstreamError はアプリ全体のハンドラで500に変換
    result = await orchestrator.match_sequence(body.to_sequence(), mapbox_client.match)
    return MatchResponse(matched_geometries=result)


@router.post(
    "/match/upload",
    response_model=UploadMatchResponse,
    summary="トラックファイルのマップマッチング",
    description="""
GPX / GeoJSON ファイルをアップロードし、セグメントごとにマッチングする。

- 形式はファイル拡張子（.gpx / .geojson / .json）または format で指定
- セグメントは1つずつ順番に処理する
- 座標数不足のセグメントはスキップ、Mapbox APIエラーのセグメントは失敗として返す
    """,
    responses={
        200: {"description": "成功（セグメントごとの結果を含む）"},
        400: {"model": ErrorResponse, "description": "ファイル形式エラー"},
    },
)
async def match_upload(
    file: Annotated[UploadFile, File(description="GPX / GeoJSON ファイル")],
    format: Annotated[Optional[str], Form(
        description="ファイル形式 ('gpx' / 'geojson')。省略時は拡張子から判定",
    )] = None,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
    mapbox_client: MapboxClient = Depends(get_mapbox_client),
    settings=Depends(get_settings),
):
    """
    ファイルアップロードAPI

    処理フロー:
    1. 形式判定・サイズチェック
    2. トラック解析（ParseErrorは400）
    3. セグメントごとにマッチング
    4. 元のトラック・マッチング結果・表示範囲を返却
    """
    fmt = (format or "").lower() or detect_format(file.filename)
    if fmt not in ("gpx", "geojson"):
        return error_response(400, "Unsupported file format. Upload a .gpx or .geojson file.")

    too_large = error_response(
        400, f"File too large. Maximum size is {settings.MAX_UPLOAD_BYTES} bytes."
    )
    if file.size is not None and file.size > settings.MAX_UPLOAD_BYTES:
        return too_large

    # 上限+1バイトまでしか読み込まない
    content = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        return too_large
    if not content.strip():
        return error_response(400, MSG_EMPTY_FILE)

    try:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError("File is not valid UTF-8 text") from e
        sequences = parse_track(text, fmt)
    except ParseError as e:
        logger.warning("Upload %s rejected: %s", file.filename, e)
        return error_response(400, str(e))

    outcomes = await orchestrator.match_segments(sequences, mapbox_client.match)

    segments = []
    for outcome in outcomes:
        if outcome.skipped:
            status, message = SegmentStatus.SKIPPED, MSG_INSUFFICIENT
        elif outcome.error is not None:
            status, message = SegmentStatus.FAILED, MSG_MATCH_FAILED
        else:
            status, message = SegmentStatus.MATCHED, None
        segments.append(SegmentResult(
            index=outcome.index,
            status=status,
            coordinate_count=len(outcome.sequence),
            matched_geometries=outcome.result if outcome.error is None else [],
            error=message,
        ))

    matched = [
        geometry
        for segment in segments
        for geometry in segment.matched_geometries
    ]

    return UploadMatchResponse(
        format=fmt,
        original_tracks=[[list(coord) for coord in sequence] for sequence in sequences],
        segments=segments,
        matched_geometries=matched,
        bounds=compute_bounds(sequences),
    )


@router.get(
    "/export",
    summary="マッチング結果のエクスポート",
    description="直近のマッチング結果を GeoJSON Feature（MultiLineString）としてダウンロードする。",
    responses={
        200: {"description": "matched-route.geojson", "content": {EXPORT_MEDIA_TYPE: {}}},
        404: {"model": ErrorResponse, "description": "エクスポートするマッチング結果がない"},
    },
)
async def export_matched_route(
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
):
    """エクスポートAPI"""
    try:
        feature = build_export_feature(orchestrator.last_result)
    except NoMatchedRoute as e:
        return error_response(404, str(e))

    return JSONResponse(
        content=feature.model_dump(),
        media_type=EXPORT_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )

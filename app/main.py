"""
app/main.py

マップマッチング API - メインアプリケーション

起動コマンド:
  uvicorn app.main:app --reload --host 0.0.0.0 --port 3000

環境変数:
  MAPBOX_ACCESS_TOKEN: Mapbox APIトークン
  MAPBOX_PROFILE: マッチングのプロファイル (デフォルト: driving)
  MATCH_BATCH_SIZE: 1リクエストあたりの座標数 (デフォルト: 100)
  MATCH_REQUEST_DELAY_MS: リクエスト間隔ミリ秒 (デフォルト: 200)
  MATCH_RADIUS: 座標ごとの探索半径メートル (デフォルト: 25)
  MAX_UPLOAD_BYTES: アップロード上限バイト数 (デフォルト: 10MB)
  CORS_ORIGINS: 許可するオリジン（カンマ区切り）
"""
import logging
import os
from contextlib import asynccontextmanager

# .envファイルを読み込む（os.getenvより前に実行）
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.services.errors import InsufficientCoordinates, ParseError, UpstreamError
from app.services.mapbox_client import MapboxClient
from app.services.orchestrator import BatchOrchestrator
from app.routers.match import router as match_router
from app.routers.token import router as token_router


logger = logging.getLogger(__name__)


# =============================================================================
# 設定
# =============================================================================

class Settings:
    """アプリケーション設定"""
    MAPBOX_ACCESS_TOKEN: str = os.getenv("MAPBOX_ACCESS_TOKEN", "")
    MAPBOX_PROFILE: str = os.getenv("MAPBOX_PROFILE", "driving")

    # バッチ設定
    # 300リクエスト/分の制限に対し、200ms と 1000ms のどちらで運用するかは
    # 環境変数で切り替える
    MATCH_BATCH_SIZE: int = int(os.getenv("MATCH_BATCH_SIZE", "100"))
    MATCH_REQUEST_DELAY_MS: int = int(os.getenv("MATCH_REQUEST_DELAY_MS", "200"))
    MATCH_RADIUS: int = int(os.getenv("MATCH_RADIUS", "25"))

    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    # CORS設定
    CORS_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
        ).split(",")
        if origin.strip()
    ]


settings = Settings()


# =============================================================================
# Lifespan（起動・終了処理）
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    アプリケーションライフサイクル管理

    参照: https://fastapi.tiangolo.com/advanced/events/

    Startup:
    1. MapboxClient初期化
    2. BatchOrchestrator初期化

    Shutdown:
    1. クライアントのクローズ
    """
    # === Startup ===
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("="*60)
    print("Starting Map Matching API...")
    print("="*60)

    if not settings.MAPBOX_ACCESS_TOKEN:
        print("  -> WARNING: MAPBOX_ACCESS_TOKEN is not set")

    # 1. MapboxClient初期化
    print(f"Initializing MapboxClient (profile={settings.MAPBOX_PROFILE})...")
    mapbox_client = MapboxClient(
        settings.MAPBOX_ACCESS_TOKEN,
        profile=settings.MAPBOX_PROFILE,
        radius=settings.MATCH_RADIUS,
    )
    app.state.mapbox_client = mapbox_client

    # 2. BatchOrchestrator初期化
    print(
        f"Initializing BatchOrchestrator "
        f"(batch_size={settings.MATCH_BATCH_SIZE}, delay={settings.MATCH_REQUEST_DELAY_MS}ms)..."
    )
    app.state.orchestrator = BatchOrchestrator(
        batch_size=settings.MATCH_BATCH_SIZE,
        request_delay=settings.MATCH_REQUEST_DELAY_MS / 1000,
    )

    print("="*60)
    print("API Ready!")
    print("="*60)

    yield  # アプリケーション実行中

    # === Shutdown ===
    print("Shutting down...")
    await mapbox_client.close()
    print("Shutdown complete.")


# =============================================================================
# FastAPIアプリケーション
# =============================================================================

app = FastAPI(
    title="マップマッチング API",
    description="""
GPSトラック（GPX / GeoJSON）を Mapbox Map Matching API で道路ネットワークにスナップするAPI

## 機能
- 座標列のマップマッチング（100座標ずつのバッチで逐次送信）
- GPX / GeoJSON ファイルのアップロード
- マッチング結果の GeoJSON エクスポート
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# CORS設定
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# ルーター登録
app.include_router(match_router)
app.include_router(token_router)


# =============================================================================
# 例外ハンドラ
# =============================================================================

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """リクエスト検証エラーを400に変換"""
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    logger.warning("Invalid request to %s: %s", request.url.path, errors)
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(ParseError)
async def parse_error_handler(request: Request, exc: ParseError):
    """ファイル形式エラー"""
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(InsufficientCoordinates)
async def insufficient_coordinates_handler(request: Request, exc: InsufficientCoordinates):
    """座標数不足"""
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    """Mapbox APIエラー（詳細はログのみ）"""
    logger.error(
        "Error in %s: %s (status=%s, code=%s)",
        request.url.path, exc, exc.status_code, exc.code,
    )
    return JSONResponse(status_code=500, content={"error": "Map matching failed"})


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    """未処理の例外（詳細はログのみ）"""
    logger.exception("Unhandled error in %s", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# =============================================================================
# ヘルスチェック・デバッグエンドポイント
# =============================================================================

@app.get("/health", tags=["system"])
async def health_check():
    """ヘルスチェック"""
    return {"status": "healthy"}


@app.get("/debug/config", tags=["debug"])
async def get_config():
    """設定確認（デバッグ用）"""
    token = settings.MAPBOX_ACCESS_TOKEN
    orchestrator: BatchOrchestrator = app.state.orchestrator
    return {
        "mapbox_token_set": bool(token),
        "mapbox_token_prefix": token[:20] + "..." if len(token) > 20 else "(empty)",
        "mapbox_profile": settings.MAPBOX_PROFILE,
        "batch_size": orchestrator.batch_size,
        "request_delay_ms": round(orchestrator.request_delay * 1000),
        "radius": settings.MATCH_RADIUS,
    }


@app.get("/debug/validate-token", tags=["debug"])
async def validate_token():
    """Mapboxトークンの有効性を確認（デバッグ用）"""
    mapbox_client: MapboxClient = app.state.mapbox_client
    return {"valid": await mapbox_client.validate_token()}


# =============================================================================
# メイン（直接実行時）
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "3000")),
        reload=True
    )

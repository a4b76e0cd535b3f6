"""
app/routers/token.py

Mapboxアクセストークン取得エンドポイント

GET /api/mapbox-token - クライアント側の地図表示用にトークンを返す
"""
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.models import ErrorResponse, TokenResponse
from app.routers.match import get_settings


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["token"])


@router.get(
    "/mapbox-token",
    response_model=TokenResponse,
    summary="Mapboxアクセストークン取得",
    responses={
        200: {"description": "成功"},
        500: {"model": ErrorResponse, "description": "トークン未設定"},
    },
)
async def get_mapbox_token(settings=Depends(get_settings)):
    """環境変数 MAPBOX_ACCESS_TOKEN をそのまま返す"""
    token = settings.MAPBOX_ACCESS_TOKEN
    if not token:
        logger.error("MAPBOX_ACCESS_TOKEN is not set")
        return JSONResponse(status_code=500, content={"error": "Mapbox token is undefined"})
    return TokenResponse(access_token=token)

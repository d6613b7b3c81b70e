import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from map_backend.crud.crud_map_request import get_valid_map_request_by_token
from map_backend.db.session import get_db_session
from map_backend.schemas.map_data import MapViewData


router = APIRouter(prefix="/api/v1", tags=["Map Data"])
logger = logging.getLogger(__name__)


@router.get(
    "/map-data/{token}",
    response_model=MapViewData,
    summary="Map payload for a bot link",
    description="""
    Returns the map style, markers and fitted viewport stored for the token.
    Unknown or expired tokens get a 404.
    """,
)
async def get_map_data_by_token(token: str, db_session: AsyncSession = Depends(get_db_session)):
    """
    - **token**: the token from the link the bot sent.
    """
    map_request = await get_valid_map_request_by_token(token=token, db_session=db_session)

    if not map_request:
        logger.warning(f"Request with an invalid or expired token: {token[:8]}...")
        return JSONResponse(
            status_code=404,
            content={"detail": "Token not found or has expired"},
        )

    try:
        map_data = MapViewData.model_validate_json(map_request.map_data_json)
    except ValidationError as e:
        logger.error(
            f"Stored map data for token {token[:8]}... is corrupt. "
            f"Record ID: {map_request.id}. Error: {e}"
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error: failed to parse map data"},
        )

    logger.info(f"Map data sent for token {token[:8]}... ({len(map_data.markers)} markers)")
    return map_data

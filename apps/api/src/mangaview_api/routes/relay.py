"""Image relay route."""

import io

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from mangaview_services import ImageRelayService
from mangaview_api.deps import get_relay_service
from mangaview_api.schemas import ErrorResponse

router = APIRouter(tags=["Relay"])


@router.get(
    "/proxy-image",
    response_class=StreamingResponse,
    responses={
        200: {"content": {"image/*": {}}},
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def proxy_image(
    url: str = Query("", description="Absolute image URL to fetch"),
    relay: ImageRelayService = Depends(get_relay_service),
):
    """Fetch an image server-side and stream it back."""
    image = await relay.proxy(url)
    return StreamingResponse(
        io.BytesIO(image.content),
        media_type=image.content_type,
        headers={"Cache-Control": image.cache_control},
    )

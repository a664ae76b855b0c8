"""Chapter routes."""

from fastapi import APIRouter, Depends, Query

from mangaview_core_schemas import ChapterInfo, ChapterPageSet
from mangaview_services import CatalogService
from mangaview_api.deps import get_catalog_service
from mangaview_api.schemas import ErrorResponse

router = APIRouter(prefix="/chapters", tags=["Chapters"])


@router.get(
    "/{chapter_id}",
    response_model=ChapterInfo,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def get_chapter(
    chapter_id: str,
    service: CatalogService = Depends(get_catalog_service),
):
    """Get chapter metadata."""
    return await service.get_chapter_info(chapter_id)


@router.get(
    "/{chapter_id}/pages",
    response_model=ChapterPageSet,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def get_chapter_pages(
    chapter_id: str,
    data_saver: bool = Query(True, description="Prefer compressed images"),
    service: CatalogService = Depends(get_catalog_service),
):
    """Get page image URLs in direct and relay-proxied form.

    Failures carry an ``external_url`` to read the chapter on the catalog site.
    """
    return await service.get_chapter_pages(chapter_id, data_saver=data_saver)

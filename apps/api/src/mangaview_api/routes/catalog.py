"""Catalog routes: search, home sections, series details and MangaPlus."""

from fastapi import APIRouter, Depends, Path, Query

from mangaview_core_schemas import MangaPlusChapter, MangaSummary, SearchPage, SectionSort, SeriesDetails
from mangaview_services import CatalogService
from mangaview_api.deps import get_catalog_service
from mangaview_api.schemas import ErrorResponse

router = APIRouter(tags=["Catalog"])

_SORTS = "|".join(s.value for s in SectionSort)


@router.get(
    "/manga",
    response_model=SearchPage,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def search_manga(
    query: str = Query(..., min_length=1, description="Title to search for"),
    page: int = Query(1, description="1-based results page"),
    service: CatalogService = Depends(get_catalog_service),
):
    """Search manga by title."""
    return await service.search(query, page)


@router.get(
    "/manga/sections/{sort}",
    response_model=list[MangaSummary],
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def list_section(
    sort: str = Path(..., description=f"Upstream sort key ({_SORTS})"),
    service: CatalogService = Depends(get_catalog_service),
):
    """List a home page section (popular, recent, top rated, new)."""
    return await service.list_section(sort)


@router.get(
    "/manga/{series_id}",
    response_model=SeriesDetails,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def get_series(
    series_id: str,
    service: CatalogService = Depends(get_catalog_service),
):
    """Get series metadata with chapters grouped by volume."""
    return await service.get_series_details(series_id)


@router.get(
    "/mangaplus/{title_id}/chapters",
    response_model=list[MangaPlusChapter],
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def list_mangaplus_chapters(
    title_id: str,
    service: CatalogService = Depends(get_catalog_service),
):
    """List the chapters of a MangaPlus title."""
    return await service.get_mangaplus_chapters(title_id)

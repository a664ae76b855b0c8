"""Chapter reader: page loading with automatic fallback between addressing forms.

A ``ReaderController`` owns one ``ReaderState`` per opened chapter. Every page
display is an attempt: the preferred form (proxied or direct) is tried first,
then the other form once, and only when both fail is the page marked failed
and the recovery actions offered.

Attempts are tagged with a token taken from the per-page attempt counter. An
asynchronous result is applied only while its token is still the latest one
for that page and the page is still the one being shown; anything else is
dropped. Superseded loads are never cancelled, only ignored.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, NamedTuple, Optional, Protocol, Sequence

from mangaview_core_schemas import (
    ChapterPageSet,
    Err,
    LoadForm,
    PageStatus,
    RecoveryAction,
    Result,
    SearchPage,
    SeriesDetails,
)
from .exceptions import ImageLoadError

logger = logging.getLogger(__name__)

PAGE_RECOVERY_ACTIONS = (
    RecoveryAction.RETRY,
    RecoveryAction.SWITCH_METHOD,
    RecoveryAction.EXTERNAL_LINK,
)
CHAPTER_RECOVERY_ACTIONS = (RecoveryAction.EXTERNAL_LINK, RecoveryAction.RELOAD)

ImageLoader = Callable[[str], Awaitable[Any]]
"""Loads one image URL; raises ImageLoadError when it cannot be displayed."""


class ReaderView(Protocol):
    """Display surface driven by the reader."""

    def show_loading(self, page: int) -> None: ...

    def show_page(self, page: int, image: Any, form: LoadForm) -> None: ...

    def show_page_error(
        self, page: int, actions: Sequence[RecoveryAction], external_url: str
    ) -> None: ...

    def show_chapter_error(
        self, message: str, actions: Sequence[RecoveryAction], external_url: Optional[str]
    ) -> None: ...

    def set_navigation(self, prev_enabled: bool, next_enabled: bool) -> None: ...

    def set_indicator(self, text: str) -> None: ...

    def replace_location(self, page: int) -> None: ...


class ChapterGateway(Protocol):
    """Catalog data as consumed by the reader. Failures come back as Err."""

    async def get_chapter_pages(
        self, chapter_id: str, data_saver: bool = True
    ) -> Result[ChapterPageSet]: ...

    async def get_series_details(self, series_id: str) -> Result[SeriesDetails]: ...

    async def search(self, query: str, page: int = 1) -> Result[SearchPage]: ...


class AttemptToken(NamedTuple):
    """Identifies one load attempt of one page."""

    page: int
    epoch: int
    attempt: int


@dataclass
class ReaderState:
    """Mutable state of one reader, owned by its controller."""

    page_set: ChapterPageSet
    current_page_index: int = 1
    use_proxy_by_default: bool = True
    attempt_counter: dict[int, int] = field(default_factory=dict)
    page_status: dict[int, PageStatus] = field(default_factory=dict)
    # Bumped when a page's counter is reset, so tokens from before the
    # reset can never match the restarted count.
    epochs: dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_page_set(cls, page_set: ChapterPageSet) -> "ReaderState":
        return cls(page_set=page_set, use_proxy_by_default=page_set.prefer_proxy)

    @property
    def total_pages(self) -> int:
        return self.page_set.total_pages

    def contains(self, page: int) -> bool:
        return 1 <= page <= self.total_pages

    def status_of(self, page: int) -> PageStatus:
        return self.page_status.get(page, PageStatus.IDLE)

    def begin_attempt(self, page: int) -> AttemptToken:
        self.attempt_counter[page] = self.attempt_counter.get(page, 0) + 1
        return AttemptToken(page, self.epochs.get(page, 0), self.attempt_counter[page])

    def reset_attempts(self, page: int) -> None:
        self.attempt_counter[page] = 0
        self.epochs[page] = self.epochs.get(page, 0) + 1

    def is_current(self, token: AttemptToken) -> bool:
        return (
            token.page == self.current_page_index
            and self.epochs.get(token.page, 0) == token.epoch
            and self.attempt_counter.get(token.page, 0) == token.attempt
        )

    def first_form(self) -> LoadForm:
        return LoadForm.PROXIED if self.use_proxy_by_default else LoadForm.DIRECT


class ReaderController:
    """Drives page display for one chapter.

    All mutation goes through ``go_to_page``, ``toggle_loading_method`` and
    ``retry_page``. These must be called from a running event loop; each
    schedules a load task and returns immediately.
    """

    def __init__(self, page_set: ChapterPageSet, view: ReaderView, loader: ImageLoader):
        self.state = ReaderState.from_page_set(page_set)
        self.view = view
        self._loader = loader
        self._tasks: set[asyncio.Task] = set()

    @property
    def current_page(self) -> int:
        return self.state.current_page_index

    @property
    def total_pages(self) -> int:
        return self.state.total_pages

    @property
    def external_url(self) -> str:
        return self.state.page_set.external_fallback_url

    def indicator_text(self, page: int) -> str:
        return f"Page {page} / {self.total_pages}"

    def go_to_page(self, page: int) -> None:
        """Show a page. Out-of-range pages are ignored."""
        state = self.state
        if not state.contains(page):
            logger.debug("Ignoring page %s outside 1..%s", page, state.total_pages)
            return

        state.current_page_index = page
        self.view.set_navigation(prev_enabled=page > 1, next_enabled=page < state.total_pages)
        self.view.replace_location(page)

        token = state.begin_attempt(page)
        state.page_status[page] = PageStatus.LOADING
        self.view.show_loading(page)

        task = asyncio.get_running_loop().create_task(self._load_page(token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def next_page(self) -> None:
        if self.current_page < self.total_pages:
            self.go_to_page(self.current_page + 1)

    def previous_page(self) -> None:
        if self.current_page > 1:
            self.go_to_page(self.current_page - 1)

    def toggle_loading_method(self) -> None:
        """Flip the preferred form for all later loads and reload the current page."""
        self.state.use_proxy_by_default = not self.state.use_proxy_by_default
        logger.info(
            "Loading method switched to %s", self.state.first_form().value
        )
        self.go_to_page(self.current_page)

    def retry_page(self, page: int) -> None:
        """Restart a page from its preferred form with a fresh attempt counter."""
        if not self.state.contains(page):
            return
        self.state.reset_attempts(page)
        self.go_to_page(page)

    async def settle(self) -> None:
        """Wait for every load in flight, including superseded ones."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending)

    async def _load_page(self, token: AttemptToken) -> None:
        state = self.state
        page = token.page
        first = state.first_form()

        for form in (first, first.other):
            url = state.page_set.url_for(page, form)
            try:
                image = await self._loader(url)
            except Exception as e:
                if not state.is_current(token):
                    logger.debug("Dropping stale failure for page %s (attempt %s)", page, token.attempt)
                    return
                if isinstance(e, ImageLoadError):
                    logger.debug("Page %s failed via %s form: %s", page, form.value, e.reason)
                else:
                    logger.warning("Page %s loader error via %s form: %r", page, form.value, e)
                continue

            if not state.is_current(token):
                logger.debug("Dropping stale image for page %s (attempt %s)", page, token.attempt)
                return

            if form is not first:
                logger.info("Page %s loaded via %s form after fallback", page, form.value)
            state.page_status[page] = PageStatus.DISPLAYED
            self.view.show_page(page, image, form)
            self.view.set_indicator(self.indicator_text(page))
            return

        logger.warning("Page %s failed to load in both forms", page)
        state.page_status[page] = PageStatus.FAILED
        self.view.show_page_error(page, PAGE_RECOVERY_ACTIONS, self.external_url)


async def open_chapter(
    gateway: ChapterGateway,
    chapter_id: str,
    view: ReaderView,
    loader: ImageLoader,
    data_saver: bool = True,
    start_page: Optional[int] = None,
    prefer_proxy: Optional[bool] = None,
) -> Optional[ReaderController]:
    """Load a chapter's page set and show its first (or requested) page.

    Args:
        prefer_proxy: Overrides the gateway's preferred form when set

    Returns:
        The controller, or None when the chapter could not be opened. In that
        case the view has been shown the chapter error and no page was loaded.
    """
    result = await gateway.get_chapter_pages(chapter_id, data_saver=data_saver)
    if isinstance(result, Err):
        logger.warning("Failed to open chapter %s: %s (%s)", chapter_id, result.message, result.code)
        view.show_chapter_error(result.message, CHAPTER_RECOVERY_ACTIONS, result.external_url)
        return None

    page_set = result.value
    if prefer_proxy is not None:
        page_set = page_set.model_copy(update={"prefer_proxy": prefer_proxy})

    controller = ReaderController(page_set, view, loader)
    if start_page is not None and controller.state.contains(start_page):
        controller.go_to_page(start_page)
    else:
        controller.go_to_page(1)
    return controller

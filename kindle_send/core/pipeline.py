import os
import html
import shutil
from enum import Enum
from typing import List, Optional
from slugify import slugify

from ..config import Config
from ..models import (
    log, Article, KindleSendError, NoReadableContentError, NoArticleAddedError,
    FALLBACK_NAME_PREFIX, staging_dir_for
)
from .extractor import ArticleExtractor
from .image_processor import AssetFetcher, ImageRewriter
from .registry import DedupRegistry
from .session import get_session
from .writer import EpubContainer

class PipelineState(Enum):
    INIT = "init"
    EXTRACTING = "extracting"
    IMAGE_PROCESSING = "image_processing"
    ASSEMBLING = "assembling"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"

def prepare(article: Article) -> str:
    return f"<h1>{html.escape(article.title)}</h1>{article.content}"

def output_filename(title: str, staging_name: str) -> str:
    title_slug = slugify(title or "")
    if not title_slug:
        return f"{FALLBACK_NAME_PREFIX}{staging_name}.epub"
    return f"{title_slug}.epub"

class EpubMaker:
    """Turns a list of page urls into one EPUB file. One instance per run."""

    def __init__(self, session, config: Optional[Config] = None):
        self.session = session
        self.config = config or Config()
        self.state = PipelineState.INIT
        self.registry = DedupRegistry()
        self.extractor = ArticleExtractor(session, self.config)
        self.container: Optional[EpubContainer] = None
        self.articles: List[Article] = []

    def _transition(self, state: PipelineState):
        log.debug(f"Pipeline {self.state.value} -> {state.value}")
        self.state = state

    async def make(self, urls: List[str], title: str = "", cover_url: str = "") -> str:
        staging_dir = staging_dir_for(urls, self.config.staging_root)
        os.makedirs(staging_dir, exist_ok=True)
        try:
            path = await self._run(urls, title, cover_url, staging_dir)
        except BaseException:
            self._transition(PipelineState.FAILED)
            raise
        finally:
            shutil.rmtree(staging_dir, ignore_errors=True)
        self._transition(PipelineState.DONE)
        return path

    async def _run(self, urls: List[str], title: str, cover_url: str, staging_dir: str) -> str:
        self._transition(PipelineState.EXTRACTING)
        self.articles = await self.extractor.fetch_all(urls)
        if not self.articles:
            raise NoReadableContentError()

        if not title:
            title = self.articles[0].title
            log.info(f"No title supplied, inheriting title of first readable article: {title}")

        self.container = EpubContainer(title, language=self.config.language, author=self.config.author)
        fetcher = AssetFetcher(self.session, staging_dir, max_retries=self.config.max_retries, backoff=self.config.image_retry_delay)

        self._transition(PipelineState.IMAGE_PROCESSING)
        rewriter = ImageRewriter(fetcher, self.registry, self.container)
        await rewriter.embed_all(self.articles)

        self._transition(PipelineState.ASSEMBLING)
        self.add_content(self.articles)

        self._transition(PipelineState.FINALIZING)
        if cover_url:
            await self.add_cover(fetcher, cover_url)

        store_dir = self.config.store_dir()
        os.makedirs(store_dir, exist_ok=True)
        path = os.path.join(store_dir, output_filename(title, os.path.basename(staging_dir)))
        self.container.write(path)
        return path

    def add_content(self, articles: List[Article]) -> int:
        added = 0
        for article in articles:
            try:
                self.container.add_section(prepare(article), article.title)
                added += 1
            except KindleSendError as e:
                log.error(f"Couldn't add {article.title} to epub: {e}")
        log.info(f"Added {added} articles")
        if added == 0:
            raise NoArticleAddedError()
        return added

    async def add_cover(self, fetcher: AssetFetcher, cover_url: str) -> bool:
        try:
            path = await fetcher.fetch(cover_url)
            self.container.set_cover(path)
        except KindleSendError as e:
            log.warning(f"Couldn't set cover from {cover_url}, continuing without one: {e}")
            return False
        return True

async def generate(urls: List[str], title: str = "", cover_url: str = "", config: Optional[Config] = None, session=None) -> str:
    """Generate a single EPUB from urls and return its path."""
    if session is not None:
        return await EpubMaker(session, config).make(urls, title, cover_url)
    async with get_session() as own_session:
        return await EpubMaker(own_session, config).make(urls, title, cover_url)

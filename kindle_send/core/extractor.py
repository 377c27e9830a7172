import asyncio
import trafilatura
from bs4 import BeautifulSoup, Comment
from typing import List, Optional, Tuple
from tqdm import tqdm

from ..config import Config
from ..models import (
    log, Article, ExtractionError, KindleSendError, TRANSIENT_TITLE_MARKERS
)
from .session import fetch_with_retry

CONTENT_SELECTORS = ('article', 'main', '[role="main"]')
NOISE_TAGS = ['script', 'style', 'noscript', 'iframe', 'nav', 'aside', 'form', 'svg']
MIN_SELECTED_TEXT = 200
MIN_CONTENT_HTML = 50

class ArticleExtractor:
    def __init__(self, session, config: Optional[Config] = None):
        self.session = session
        self.config = config or Config()

    @staticmethod
    def extract_from_html(html_content: str, url: str) -> Tuple[str, str]:
        """Return (title, content_html) for a raw page. Raises ExtractionError."""
        soup = BeautifulSoup(html_content, 'lxml')
        metadata = trafilatura.extract_metadata(html_content)
        title = (metadata.title if metadata else None) or (soup.title.string.strip() if soup.title and soup.title.string else None)

        node = next((n for n in map(soup.select_one, CONTENT_SELECTORS)
                     if n is not None and len(n.get_text(strip=True)) > MIN_SELECTED_TEXT), None)
        if node is not None:
            content = ArticleExtractor._strip_noise(node).decode()
        else:
            log.debug(f"No content container in {url}, using trafilatura")
            content = trafilatura.extract(html_content, url=url, include_images=True,
                                          include_tables=True, output_format='html')

        if not content or len(content) < MIN_CONTENT_HTML:
            raise ExtractionError(f"Content too short for {url}")
        return title or "Untitled Webpage", content

    @staticmethod
    def _strip_noise(node):
        for tag in node.find_all(NOISE_TAGS):
            tag.decompose()
        for comment in node.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()
        return node

    @staticmethod
    def is_transient_title(title: Optional[str]) -> bool:
        return bool(title) and any(marker in title for marker in TRANSIENT_TITLE_MARKERS)

    async def extract_readable(self, url: str) -> Tuple[str, str]:
        """One attempt: fetch the page and extract its readable title and content."""
        raw_html = await fetch_with_retry(self.session, url, 'text', max_retries=1, timeout=self.config.extract_timeout)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, ArticleExtractor.extract_from_html, raw_html, url)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Readability failed for {url}: {e}") from e

    async def fetch_readable(self, url: str, index: int = 0) -> Article:
        """Up to max_retries attempts. A transient title only triggers another attempt;
        if the last attempt still extracted something, that result is kept."""
        retries = self.config.max_retries
        for attempt in range(1, retries + 1):
            try:
                title, content = await self.extract_readable(url)
            except KindleSendError as e:
                if attempt == retries:
                    raise
                log.warning(f"Failed to fetch readable content from {url}: {e} will retry {attempt}")
            else:
                if attempt == retries or not self.is_transient_title(title):
                    return Article(title=title, content=content, source_index=index, source_url=url)
                log.warning(f"Transient title {title!r} from {url}, will retry {attempt}")
            await asyncio.sleep(self.config.retry_delay)

    async def fetch_all(self, urls: List[str]) -> List[Article]:
        """Extract every url concurrently; the result keeps input order and drops failures."""
        if not urls:
            return []
        results: asyncio.Queue = asyncio.Queue(maxsize=len(urls))

        async def fetch_one(url: str, index: int):
            try:
                article = await self.fetch_readable(url, index)
                log.info(f"Fetched {url} --> {article.title}")
            except KindleSendError as e:
                log.error(f"Couldn't convert {url} because {e}")
                log.warning(f"SKIPPING {url}")
                article = Article.placeholder(index, url)
            except Exception as e:
                log.exception(f"Unexpected error converting {url}: {e}")
                article = Article.placeholder(index, url)
            await results.put((index, article))

        tasks = [asyncio.create_task(fetch_one(url, i)) for i, url in enumerate(urls)]
        ordered: List[Optional[Article]] = [None] * len(urls)
        try:
            with tqdm(total=len(urls), desc="Fetching articles", unit="url", leave=False) as bar:
                for _ in range(len(urls)):
                    index, article = await results.get()
                    ordered[index] = article
                    bar.update(1)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
        return [a for a in ordered if a is not None and not a.is_empty]

import os
import asyncio
import mimetypes
from urllib.parse import urljoin, urlparse
from bs4 import BeautifulSoup, Tag
from typing import List, Optional
from tqdm.asyncio import tqdm_asyncio

from ..models import (
    log, Article, FetchError, KindleSendError, IMG_MAX_RETRIES, IMG_RETRY_DELAY, gen_hash
)
from .registry import DedupRegistry
from .session import fetch_with_retry

SKIP_SCHEMES = ('data:', 'mailto:', 'javascript:', 'about:')
# Attributes that would make readers ignore the rewritten src
STRIP_ATTRS = ('loading', 'srcset', 'sizes', 'data-src', 'data-srcset', 'decoding')

class AssetFetcher:
    """Downloads remote resources into the run's staging directory."""

    def __init__(self, session, staging_dir: str, max_retries: int = IMG_MAX_RETRIES, backoff: float = IMG_RETRY_DELAY):
        self.session = session
        self.staging_dir = staging_dir
        self.max_retries = max_retries
        self.backoff = backoff

    @staticmethod
    def file_name(url: str) -> str:
        ext = os.path.splitext(urlparse(url).path)[1].lower()
        if not ext or not (mimetypes.guess_type(f"x{ext}")[0] or "").startswith("image/"):
            ext = ""
        return f"{gen_hash(url)}{ext}"

    def staging_path(self, url: str) -> str:
        return os.path.join(self.staging_dir, self.file_name(url))

    async def fetch(self, url: str) -> str:
        path = self.staging_path(url)
        if os.path.exists(path):
            log.debug(f"Skip download, {url} already existed {path}")
            return path

        data = await fetch_with_retry(self.session, url, 'bytes', max_retries=self.max_retries, backoff=self.backoff)
        try:
            with open(path, 'wb') as f:
                f.write(data)
        except OSError as e:
            if os.path.exists(path):
                os.remove(path)
            raise FetchError(url, f"couldn't stage to {path}: {e}")
        return path

class ImageRewriter:
    def __init__(self, fetcher: AssetFetcher, registry: DedupRegistry, container):
        self.fetcher = fetcher
        self.registry = registry
        self.container = container

    async def _materialize(self, url: str) -> str:
        path = await self.fetcher.fetch(url)
        ref = self.container.add_image(path, gen_hash(url))
        log.info(f"Downloaded image {url}")
        return ref

    async def ensure_local(self, url: str) -> Optional[str]:
        try:
            return await self.registry.resolve(url, self._materialize)
        except KindleSendError as e:
            log.warning(f"Couldn't add image {url}: {e}")
            return None

    @staticmethod
    def image_url(img_tag: Tag, base_url: str) -> Optional[str]:
        src = (img_tag.get('src') or img_tag.get('data-src') or "").strip()
        if not src or src.startswith(SKIP_SCHEMES):
            return None
        return urljoin(base_url, src) if base_url else src

    @staticmethod
    def _flatten_pictures(soup: BeautifulSoup):
        for pic in soup.find_all('picture'):
            img = pic.find('img')
            if img:
                for source in pic.find_all('source'):
                    source.decompose()
                pic.replace_with(img)
            else:
                pic.decompose()

    def find_images(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        urls = []
        for img in soup.find_all('img'):
            url = self.image_url(img, base_url)
            if url and url not in urls:
                urls.append(url)
        return urls

    def change_refs(self, soup: BeautifulSoup, base_url: str) -> int:
        """Point every img whose url has a registry entry at the embedded copy."""
        changed = 0
        for img in soup.find_all('img'):
            url = self.image_url(img, base_url)
            ref = self.registry.lookup(url) if url else None
            if not ref:
                continue
            for attr in STRIP_ATTRS:
                if img.has_attr(attr):
                    del img[attr]
            log.debug(f"Setting img src from {url} to {ref}")
            img['src'] = ref
            changed += 1
        return changed

    async def embed_images(self, article: Article):
        """Download the article's images, then rewrite its references to the local copies."""
        log.info(f"Embedding images in {article.title}")
        soup = BeautifulSoup(article.content, 'html.parser')
        self._flatten_pictures(soup)
        urls = self.find_images(soup, article.source_url)

        # Download everything first so repeated images are fetched only once
        if urls:
            await asyncio.gather(*(self.ensure_local(u) for u in urls))

        changed = self.change_refs(soup, article.source_url)
        try:
            content = soup.decode()
        except (ValueError, TypeError, RecursionError) as e:
            log.warning(f"Error converting modified {article.title} to HTML, it will be transferred without images: {e}")
            return
        article.content = content
        log.debug(f"Rewrote {changed} image reference(s) in {article.title}")

    async def embed_all(self, articles: List[Article]):
        async def safe_embed(article: Article):
            try:
                await self.embed_images(article)
            except Exception as e:
                log.exception(f"Failed to embed images for {article.source_url}: {e}")

        if not articles:
            return
        await tqdm_asyncio.gather(*(safe_embed(a) for a in articles), desc="Embedding images", unit="article", leave=False)

import os
import html
import mimetypes
from typing import List, Optional, Tuple
from ebooklib import epub
from PIL import Image as PillowImage, UnidentifiedImageError

from ..models import log, ContainerError, IMAGE_DIR_IN_EPUB, gen_hash

BASE_CSS = """
    body { font-family: sans-serif; margin: 0.5em; line-height: 1.5; }
    h1 { font-size: 1.4em; margin-bottom: 0.6em; }
    img { max-width: 100%; height: auto; }
    figure { margin: 0; text-align: center; }
    figcaption { font-size: 0.8em; color: #666; font-style: italic; }
    pre { background: #f0f0f0; padding: 10px; overflow-x: auto; font-size: 0.9em; }
    p { margin-top: 0; margin-bottom: 0.4em; }
"""

def detect_image_type(path: str) -> Optional[str]:
    try:
        with PillowImage.open(path) as img:
            mime = PillowImage.MIME.get(img.format or "")
            if mime:
                return mime
    except (UnidentifiedImageError, OSError):
        pass
    guessed = mimetypes.guess_type(path)[0]
    return guessed if guessed and guessed.startswith("image/") else None

class EpubContainer:
    """In-progress EPUB: sections in insertion order plus embedded images and an optional cover."""

    def __init__(self, title: str, language: str = "en", author: Optional[str] = None, custom_css: Optional[str] = None):
        self.title = title
        self.book = epub.EpubBook()
        self.book.set_identifier(f"urn:kindle-send:{gen_hash(title)}")
        self.book.set_title(title)
        self.book.set_language(language)
        if author:
            self.book.add_author(author)
        self.language = language

        css = BASE_CSS + (f"\n{custom_css}" if custom_css else "")
        self.css_item = epub.EpubItem(uid="style_default", file_name="style/default.css", media_type="text/css", content=css)
        self.book.add_item(self.css_item)

        self.sections: List[epub.EpubHtml] = []
        self.images: List[str] = []
        self.has_cover = False

    @staticmethod
    def _read(path: str) -> Tuple[bytes, str]:
        mime = detect_image_type(path)
        if not mime:
            raise ContainerError(f"Unsupported image file {path}")
        try:
            with open(path, 'rb') as f:
                return f.read(), mime
        except OSError as e:
            raise ContainerError(f"Couldn't read image {path}: {e}") from e

    def add_section(self, body_html: str, title: str) -> str:
        if not body_html or not body_html.strip():
            raise ContainerError(f"Section '{title}' has no content")
        filename = f"section_{len(self.sections) + 1:04d}.xhtml"
        chapter = epub.EpubHtml(title=title, file_name=filename, lang=self.language)
        chapter.content = (
            f'<html xmlns="http://www.w3.org/1999/xhtml"><head><title>{html.escape(title)}</title>'
            f'<link rel="stylesheet" href="style/default.css"/></head><body>{body_html}</body></html>'
        )
        chapter.add_item(self.css_item)
        self.book.add_item(chapter)
        self.sections.append(chapter)
        return filename

    def add_image(self, path: str, name: str) -> str:
        """Embed the image at path; returns the href sections should reference."""
        content, mime = self._read(path)
        ext = mimetypes.guess_extension(mime) or os.path.splitext(path)[1] or ".img"
        href = f"{IMAGE_DIR_IN_EPUB}/{name}{ext}"
        if href in self.images:
            return href
        image = epub.EpubImage(uid=f"img_{name}", file_name=href, media_type=mime, content=content)
        self.book.add_item(image)
        self.images.append(href)
        return href

    def set_cover(self, path: str):
        content, mime = self._read(path)
        ext = mimetypes.guess_extension(mime) or ".img"
        self.book.set_cover(f"cover{ext}", content)
        self.has_cover = True

    def write(self, output_path: str):
        if not self.sections:
            raise ContainerError("Cannot write an EPUB without sections")
        self.book.toc = tuple(self.sections)
        self.book.add_item(epub.EpubNcx())
        self.book.add_item(epub.EpubNav())
        spine = ['nav'] + self.sections
        if self.has_cover:
            spine.insert(0, 'cover')
        self.book.spine = spine
        try:
            epub.write_epub(output_path, self.book)
        except (OSError, ValueError) as e:
            raise ContainerError(f"Couldn't write {output_path}: {e}") from e
        log.info(f"Wrote EPUB: {output_path}")

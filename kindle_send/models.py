import os
import hashlib
import logging
from enum import Enum
from dataclasses import dataclass
from typing import List

# --- Constants ---
EXTRACT_TIMEOUT = 30.0
MAX_RETRIES = 3
RETRY_DELAY = 3.0
IMG_MAX_RETRIES = 3
IMG_RETRY_DELAY = 1.0
IMAGE_DIR_IN_EPUB = "images"
STAGING_PREFIX = "tmp-"
FALLBACK_NAME_PREFIX = "kindle-send-doc-"
# Upstream proxies leak their error page title into the readable result
TRANSIENT_TITLE_MARKERS = ("502", "Bad Gateway")

# --- Logging ---
_LOGLEVEL = os.getenv("LOGLEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, _LOGLEVEL, logging.INFO),
                    format='%(asctime)s - %(levelname)s - %(message)s')
log = logging.getLogger(__name__)

# --- Errors ---

class KindleSendError(Exception):
    pass

class ConfigError(KindleSendError):
    pass

class FetchError(KindleSendError):
    """A remote resource could not be retrieved after all attempts."""
    def __init__(self, url: str, reason: str, status: int = 0):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status = status

class ExtractionError(KindleSendError):
    pass

class ContainerError(KindleSendError):
    pass

class GenerationError(KindleSendError):
    """Run-fatal: no EPUB is produced."""

class NoReadableContentError(GenerationError):
    def __init__(self):
        super().__init__("No readable url given, exiting without creating epub")

class NoArticleAddedError(GenerationError):
    def __init__(self):
        super().__init__("No article was added, epub creation failed")

# --- Data Structures ---

class RequestKind(Enum):
    SINGLE_PAGE = "url"
    PAGE_LIST = "url_file"
    LOCAL_FILE = "file"

@dataclass(frozen=True)
class FetchRequest:
    locator: str
    kind: RequestKind

@dataclass
class Article:
    title: str
    content: str
    source_index: int
    source_url: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.content

    @classmethod
    def placeholder(cls, index: int, url: str = "") -> "Article":
        return cls(title="", content="", source_index=index, source_url=url)

# --- Helper Functions ---

def gen_hash(text: str, length: int = 16) -> str:
    """Deterministic short hex digest used for staging names."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:length]

def staging_dir_for(urls: List[str], root: str = "") -> str:
    name = f"{STAGING_PREFIX}{gen_hash('-'.join(urls))}"
    return os.path.join(root, name) if root else name

from typing import List, Optional

from ..config import Config
from ..models import log, FetchRequest, RequestKind, KindleSendError
from .classifier import extract_links
from .pipeline import generate
from .session import get_session

async def _process(requests: List[FetchRequest], title: str, cover_url: str, config: Config, session) -> List[FetchRequest]:
    processed = []
    for req in requests:
        if req.kind == RequestKind.LOCAL_FILE:
            processed.append(req)
            continue
        try:
            if req.kind == RequestKind.SINGLE_PAGE:
                urls = [req.locator]
            else:
                urls = extract_links(req.locator)
            path = await generate(urls, title, cover_url, config=config, session=session)
        except (KindleSendError, OSError) as e:
            log.error(f"SKIPPING {req.locator}: {e}")
            continue
        processed.append(FetchRequest(path, RequestKind.LOCAL_FILE))
    return processed

async def process_requests(requests: List[FetchRequest], title: str = "", cover_url: str = "",
                           config: Optional[Config] = None, session=None) -> List[FetchRequest]:
    """Turn classified requests into ready files; failed requests are logged and left out."""
    config = config or Config()
    if session is not None:
        return await _process(requests, title, cover_url, config, session)
    async with get_session() as own_session:
        return await _process(requests, title, cover_url, config, own_session)

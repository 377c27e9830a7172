import os
from typing import List
from urllib.parse import urlparse

from ..models import log, FetchRequest, RequestKind

LINK_FILE_EXTENSIONS = {'.txt', '.list', '.urls', ''}

def is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

def classify(args: List[str]) -> List[FetchRequest]:
    """Sort command-line inputs into page urls, link files and ready-made documents."""
    requests = []
    for arg in args:
        arg = arg.strip()
        if not arg:
            continue
        if is_url(arg):
            requests.append(FetchRequest(arg, RequestKind.SINGLE_PAGE))
        elif os.path.isfile(arg):
            ext = os.path.splitext(arg)[1].lower()
            kind = RequestKind.PAGE_LIST if ext in LINK_FILE_EXTENSIONS else RequestKind.LOCAL_FILE
            requests.append(FetchRequest(arg, kind))
        else:
            log.warning(f"SKIPPING {arg}: neither a url nor an existing file")
    return requests

def extract_links(path: str) -> List[str]:
    links = []
    with open(path, 'r', encoding='utf-8', errors='ignore') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#'): continue
            if is_url(line):
                links.append(line)
            else:
                log.warning(f"Ignoring '{line}' in {path}: not a url")
    return links

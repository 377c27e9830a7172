import argparse
import os
import sys
import asyncio

from kindle_send.config import load_config
from kindle_send.models import log, ConfigError
from kindle_send.core.classifier import classify
from kindle_send.core.handler import process_requests

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Download webpages or lists of webpages as EPUB files ready for an e-reader."
    )
    parser.add_argument("inputs", nargs='+', help="URL(s), text file(s) with one URL per line, or existing e-book files")
    parser.add_argument("-o", "--output", default="", help="Title of the generated book (also used for the file name)")
    parser.add_argument("-i", "--cover-image", default="", help="Cover image URL")
    parser.add_argument("-c", "--config", help="Path to a YAML config file")
    return parser.parse_args(argv)

async def async_main(argv=None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as e:
        log.error(str(e))
        return 1

    requests = classify(args.inputs)
    if not requests:
        print("No usable inputs provided.")
        return 1

    processed = await process_requests(requests, args.output, args.cover_image, config)
    if not processed:
        log.error("No content was successfully fetched.")
        return 1

    print(f"Downloaded {len(processed)} files:")
    for idx, req in enumerate(processed, 1):
        print(f"{idx}. {os.path.basename(req.locator)}")
    return 0

if __name__ == "__main__":
    sys.exit(asyncio.run(async_main()))

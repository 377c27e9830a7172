import pytest
from unittest.mock import patch, AsyncMock, MagicMock

from kindle_send.models import ContainerError, FetchRequest, RequestKind, NoReadableContentError
from kindle_send.core.handler import process_requests

@pytest.mark.asyncio
async def test_requests_are_dispatched_by_kind(tmp_path, config):
    links = tmp_path / "links.txt"
    links.write_text("https://example.com/1\nhttps://example.com/2\n")
    requests = [
        FetchRequest("/books/ready.epub", RequestKind.LOCAL_FILE),
        FetchRequest("https://example.com/single", RequestKind.SINGLE_PAGE),
        FetchRequest(str(links), RequestKind.PAGE_LIST),
    ]

    async def fake_generate(urls, title, cover_url, config=None, session=None):
        return f"/out/{len(urls)}.epub"

    mock_generate = AsyncMock(side_effect=fake_generate)
    with patch("kindle_send.core.handler.generate", mock_generate):
        processed = await process_requests(requests, "Title", "https://example.com/cover.png", config, session=MagicMock())

    assert processed == [
        FetchRequest("/books/ready.epub", RequestKind.LOCAL_FILE),
        FetchRequest("/out/1.epub", RequestKind.LOCAL_FILE),
        FetchRequest("/out/2.epub", RequestKind.LOCAL_FILE),
    ]
    first_call, second_call = mock_generate.call_args_list
    assert first_call.args == (["https://example.com/single"], "Title", "https://example.com/cover.png")
    assert second_call.args[0] == ["https://example.com/1", "https://example.com/2"]

@pytest.mark.asyncio
async def test_failed_request_is_skipped(config):
    requests = [
        FetchRequest("https://example.com/broken", RequestKind.SINGLE_PAGE),
        FetchRequest("https://example.com/unwritable", RequestKind.SINGLE_PAGE),
        FetchRequest("https://example.com/fine", RequestKind.SINGLE_PAGE),
    ]

    async def fake_generate(urls, title, cover_url, config=None, session=None):
        if urls[0].endswith("broken"):
            raise NoReadableContentError()
        if urls[0].endswith("unwritable"):
            raise ContainerError("Failed to write EPUB")
        return "/out/fine.epub"

    with patch("kindle_send.core.handler.generate", AsyncMock(side_effect=fake_generate)):
        processed = await process_requests(requests, config=config, session=MagicMock())

    assert processed == [FetchRequest("/out/fine.epub", RequestKind.LOCAL_FILE)]

@pytest.mark.asyncio
async def test_missing_link_file_is_skipped(tmp_path, config):
    requests = [FetchRequest(str(tmp_path / "gone.txt"), RequestKind.PAGE_LIST)]
    with patch("kindle_send.core.handler.generate", AsyncMock()) as mock_generate:
        processed = await process_requests(requests, config=config, session=MagicMock())

    assert processed == []
    assert not mock_generate.called

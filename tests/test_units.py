import os
import pytest

from kindle_send.config import Config, load_config
from kindle_send.models import ConfigError, FetchRequest, RequestKind, Article, staging_dir_for, gen_hash
from kindle_send.core.classifier import classify, extract_links
from kindle_send.core.extractor import ArticleExtractor
from kindle_send.core.image_processor import AssetFetcher
from kindle_send.core.pipeline import output_filename, prepare

def test_staging_dir_is_deterministic():
    urls = ["https://a.com/1", "https://b.com/2"]
    assert staging_dir_for(urls) == staging_dir_for(list(urls))
    assert staging_dir_for(urls) != staging_dir_for(list(reversed(urls)))
    assert staging_dir_for(urls, "/tmp/root").startswith("/tmp/root/tmp-")

def test_output_filename_uses_slug():
    assert output_filename("Alien", "tmp-abc") == "alien.epub"
    assert output_filename("How to Do What You Love", "tmp-abc") == "how-to-do-what-you-love.epub"

def test_output_filename_fallback_for_empty_slug():
    assert output_filename("!!!", "tmp-abc") == "kindle-send-doc-tmp-abc.epub"
    assert output_filename("", "tmp-abc") == "kindle-send-doc-tmp-abc.epub"

def test_prepare_escapes_title():
    article = Article(title="A < B", content="<p>x</p>", source_index=0)
    assert prepare(article) == "<h1>A &lt; B</h1><p>x</p>"

def test_transient_title_markers():
    assert ArticleExtractor.is_transient_title("502 Bad Gateway")
    assert ArticleExtractor.is_transient_title("Error: Bad Gateway")
    assert not ArticleExtractor.is_transient_title("How to Start a Startup")
    assert not ArticleExtractor.is_transient_title(None)

def test_staging_file_name_keeps_image_extension():
    url = "https://example.com/pics/photo.JPG?w=300"
    assert AssetFetcher.file_name(url) == f"{gen_hash(url)}.jpg"
    assert AssetFetcher.file_name("https://example.com/render.php?id=1") == gen_hash("https://example.com/render.php?id=1")

def test_classify(tmp_path):
    links = tmp_path / "links.txt"
    links.write_text("https://example.com/a\n")
    book = tmp_path / "book.epub"
    book.write_bytes(b"PK")

    requests = classify(["https://example.com/page", str(links), str(book), "not-a-thing"])
    assert requests == [
        FetchRequest("https://example.com/page", RequestKind.SINGLE_PAGE),
        FetchRequest(str(links), RequestKind.PAGE_LIST),
        FetchRequest(str(book), RequestKind.LOCAL_FILE),
    ]

def test_extract_links_skips_comments_and_junk(tmp_path):
    links = tmp_path / "links.txt"
    links.write_text("# reading list\n\nhttp://paulgraham.com/alien.html\n  junk line\nhttps://paulgraham.com/hwh.html  \n")
    assert extract_links(str(links)) == ["http://paulgraham.com/alien.html", "https://paulgraham.com/hwh.html"]

def test_config_store_dir_defaults_to_cwd():
    assert Config().store_dir() == os.getcwd()
    assert Config(storage_path="/books").store_dir() == "/books"

def test_load_config_yaml_and_env(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("storage_path: /books\nmax_retries: 5\nretry_delay: 0.5\nbogus: 1\n")
    monkeypatch.setenv("KINDLE_SEND_RETRY_DELAY", "2")
    config = load_config(str(cfg))
    assert config.storage_path == "/books"
    assert config.max_retries == 5
    assert config.retry_delay == 2.0

def test_load_config_missing_file_uses_defaults(tmp_path):
    config = load_config(str(tmp_path / "nope.yaml"))
    assert config.max_retries == 3
    assert config.extract_timeout == 30

def test_load_config_rejects_bad_values(tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("max_retries: lots\n")
    with pytest.raises(ConfigError):
        load_config(str(cfg))

    cfg.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(str(cfg))

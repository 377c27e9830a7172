import base64
import pytest

from kindle_send.config import Config

# 1x1 transparent PNG
PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

@pytest.fixture
def png_bytes():
    return PNG_BYTES

@pytest.fixture
def config(tmp_path):
    store = tmp_path / "out"
    staging = tmp_path / "staging"
    staging.mkdir()
    return Config(
        storage_path=str(store),
        staging_root=str(staging),
        retry_delay=0,
        image_retry_delay=0,
    )

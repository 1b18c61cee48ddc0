import asyncio
import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from capture import CaptureError, get_capturer
from config import Settings, get_settings
from main import app


def make_image(width: int = 100, height: int = 100, format: str = "PNG") -> bytes:
    img = Image.new("RGB", (width, height), color=(255, 0, 0))
    buf = io.BytesIO()
    img.save(buf, format=format)
    return buf.getvalue()


def make_png(width: int = 100, height: int = 100) -> bytes:
    return make_image(width, height, "PNG")


class FakeCapturer:
    """Writes a small PNG tagged with the artifact name instead of launching a browser."""

    def __init__(self, delay: float = 0.0, error: Exception = None):
        self.delay = delay
        self.error = error
        self.calls = []

    async def capture(self, preview_url: str, save_path: Path) -> Path:
        self.calls.append((preview_url, save_path))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        save_path.write_bytes(make_png(2, 2) + save_path.name.encode())
        return save_path


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def image_factory():
    return make_image


@pytest.fixture
def png_bytes():
    return make_png(100, 100)


@pytest.fixture
def jpeg_bytes():
    return make_image(100, 100, "JPEG")


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        base_url="http://testserver",
        upload_dir=tmp_path / "uploads",
        screenshot_dir=tmp_path / "screenshots",
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def fake_capturer():
    return FakeCapturer()


@pytest.fixture
def overrides(test_settings, fake_capturer):
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_capturer] = lambda: fake_capturer
    yield app.dependency_overrides
    app.dependency_overrides.clear()


@pytest.fixture
def client(overrides):
    return TestClient(app)


@pytest.fixture
def failing_capturer(overrides):
    capturer = FakeCapturer(error=CaptureError("Failed to process the page: Timeout 30000ms exceeded."))
    overrides[get_capturer] = lambda: capturer
    return capturer


@pytest.fixture
def slow_capturer(overrides):
    capturer = FakeCapturer(delay=0.2)
    overrides[get_capturer] = lambda: capturer
    return capturer

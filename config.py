# config.py
#
# Settings are read once from the environment (and an optional .env file).
# The variable names are listed at the top of main.py.

import os
import tempfile
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"

if ENV_PATH.exists():
    load_dotenv(ENV_PATH)
else:
    load_dotenv()

# Compatibility flags for containers and small hosting plans.
DEFAULT_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--single-process",
]

EXECUTABLE_PATH_VARS = ("BROWSER_EXECUTABLE_PATH", "PUPPETEER_EXECUTABLE_PATH", "CHROME_PATH")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> Optional[List[str]]:
    value = os.getenv(name)
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


class BrowserLaunchConfig(BaseModel):
    """How Chromium gets launched for a capture.

    Launch order is explicit: a configured executable is tried first, and the
    Playwright-bundled Chromium is used when nothing is configured or when
    ``fallback_to_bundled`` allows a second attempt.
    """
    executable_path: Optional[str] = Field(None, description="Path to a Chrome/Chromium binary.")
    fallback_to_bundled: bool = Field(False, description="Retry once with bundled Chromium if the configured binary fails.")
    headless: bool = Field(True, description="Run without a visible window.")
    args: List[str] = Field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))

    def candidates(self) -> List[Optional[str]]:
        """Executables to try, in order. ``None`` means the bundled Chromium."""
        if not self.executable_path:
            return [None]
        if self.fallback_to_bundled:
            return [self.executable_path, None]
        return [self.executable_path]

    @classmethod
    def from_env(cls) -> "BrowserLaunchConfig":
        executable_path = None
        for name in EXECUTABLE_PATH_VARS:
            if os.getenv(name):
                executable_path = os.getenv(name)
                break
        values = {
            "executable_path": executable_path,
            "fallback_to_bundled": _env_flag("BROWSER_FALLBACK_TO_BUNDLED"),
            "headless": _env_flag("BROWSER_HEADLESS", True),
        }
        args = _env_list("BROWSER_ARGS")
        if args is not None:
            values["args"] = args
        return cls(**values)


class Settings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(8000, gt=0, le=65535)
    base_url: Optional[str] = Field(None, description="Public base URL the browser uses to reach /preview.")
    upload_dir: Path = BASE_DIR / "uploads"
    screenshot_dir: Path = Path(tempfile.gettempdir()) / "screenshot-app"
    max_upload_bytes: int = Field(10 * 1024 * 1024, gt=0)
    upload_max_files: int = Field(100, ge=1, description="Uploads kept on disk; older ones are pruned.")
    upload_max_age_seconds: int = Field(24 * 60 * 60, gt=0, description="Uploads older than this are pruned.")
    navigation_timeout_ms: int = Field(60000, ge=1000, le=120000)
    image_timeout_ms: int = Field(30000, ge=1000, le=120000)
    viewport_width: int = Field(1280, gt=0, le=3840)
    viewport_height: int = Field(800, gt=0, le=2160)
    log_level: str = "INFO"
    browser: BrowserLaunchConfig = Field(default_factory=BrowserLaunchConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        # Only pass what is set so the model defaults apply otherwise.
        env_map = {
            "host": "HOST",
            "port": "PORT",
            "base_url": "BASE_URL",
            "upload_dir": "UPLOAD_DIR",
            "screenshot_dir": "SCREENSHOT_DIR",
            "max_upload_bytes": "MAX_UPLOAD_BYTES",
            "upload_max_files": "UPLOAD_MAX_FILES",
            "upload_max_age_seconds": "UPLOAD_MAX_AGE",
            "navigation_timeout_ms": "NAVIGATION_TIMEOUT_MS",
            "image_timeout_ms": "IMAGE_TIMEOUT_MS",
            "viewport_width": "VIEWPORT_WIDTH",
            "viewport_height": "VIEWPORT_HEIGHT",
            "log_level": "LOG_LEVEL",
        }
        values = {field: os.getenv(var) for field, var in env_map.items() if os.getenv(var)}
        if values.get("base_url"):
            values["base_url"] = values["base_url"].rstrip("/")
        return cls(browser=BrowserLaunchConfig.from_env(), **values)


settings = Settings.from_env()


def get_settings() -> Settings:
    """Dependency returning the process settings."""
    return settings

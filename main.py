# main.py
#
# To run this application:
# 1. Install dependencies:
#    pip install -e .
#
# 2. Install Playwright's browser binaries (only needs to be done once):
#    playwright install chromium
#
# 3. Optional environment (or .env) settings:
#    BASE_URL                  public URL the browser uses to reach /preview
#    PORT / HOST               listening address (default 0.0.0.0:8000)
#    UPLOAD_DIR                where uploaded images are stored
#    SCREENSHOT_DIR            where temporary screenshots are written
#    UPLOAD_MAX_FILES / UPLOAD_MAX_AGE  upload retention (count, seconds)
#    BROWSER_EXECUTABLE_PATH   Chrome/Chromium binary (else bundled Chromium)
#    BROWSER_FALLBACK_TO_BUNDLED=1  retry with bundled Chromium on launch failure
#
# 4. Start the server:
#    uvicorn main:app --host 0.0.0.0 --port 8000

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

import storage
from capture import CaptureError, ScreenshotCapturer, get_capturer
from config import BASE_DIR, Settings, get_settings, settings
from pages import render_index, render_preview

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("screenshot_app")

IMAGE_COOKIE = "image_ref"
DISCONNECT_POLL_SECONDS = 0.5


class ClientDisconnected(Exception):
    """The client went away before the capture finished."""


@asynccontextmanager
async def lifespan(app: FastAPI):
    s = get_settings()
    s.upload_dir.mkdir(parents=True, exist_ok=True)
    s.screenshot_dir.mkdir(parents=True, exist_ok=True)
    storage.prune_uploads(s.upload_dir, s.upload_max_files, s.upload_max_age_seconds)
    logger.info("🚀 Starting screenshot app")
    logger.info("Uploads: %s, screenshots: %s", s.upload_dir, s.screenshot_dir)
    logger.info("Browser: %s", s.browser.executable_path or "bundled chromium")
    yield
    logger.info("🌙 Screenshot app stopped")


app = FastAPI(
    title="Image Screenshot 📸",
    description="Upload an image, preview it, and download a headless-browser screenshot of the preview.",
    lifespan=lifespan,
)

app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")


@app.exception_handler(StarletteHTTPException)
async def plain_text_http_error(request: Request, exc: StarletteHTTPException):
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=getattr(exc, "headers", None))


def resolve_image_url(request: Request, image: Optional[str]) -> Optional[str]:
    """Explicit ``image`` parameter first, then the client's last upload."""
    if image:
        return image
    remembered = request.cookies.get(IMAGE_COOKIE)
    if storage.is_upload_name(remembered):
        return storage.public_url(remembered)
    return None


def preview_url_for(request: Request, s: Settings, image_url: str) -> str:
    base = s.base_url or str(request.base_url).rstrip("/")
    return f"{base}/preview?{urlencode({'image': image_url})}"


async def run_until_disconnect(request: Request, coro):
    """Await ``coro``, cancelling it if the client goes away first."""
    task = asyncio.ensure_future(coro)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected, aborting capture")
                task.cancel()
                await asyncio.wait({task})
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


@app.get("/", response_class=HTMLResponse, include_in_schema=False)
async def index():
    return render_index()


@app.get("/health")
async def health(s: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "service": "image-screenshot",
        "browser": s.browser.executable_path or "bundled",
    }


@app.post("/upload", tags=["Screenshot"])
async def upload(
    image: Optional[UploadFile] = File(None),
    s: Settings = Depends(get_settings),
):
    """Store an uploaded image and redirect to its preview page."""
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="No image file provided.")
    data = await image.read(s.max_upload_bytes + 1)
    try:
        name = storage.save_upload(data, s.upload_dir, s.max_upload_bytes)
    except storage.UploadRejected as e:
        logger.info("Upload rejected (%s): %s", image.filename, e)
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except OSError as e:
        logger.error("Failed to store upload %s: %s", image.filename, e)
        raise HTTPException(status_code=500, detail="Server error: could not store the uploaded image.")
    storage.prune_uploads(s.upload_dir, s.upload_max_files, s.upload_max_age_seconds, keep=name)

    # The cookie keeps the last upload per client; there is no server-side slot.
    response = RedirectResponse(url=f"/preview?{urlencode({'image': storage.public_url(name)})}", status_code=303)
    response.set_cookie(IMAGE_COOKIE, name, httponly=True, samesite="lax")
    return response


@app.get("/uploads/{name}", include_in_schema=False)
async def uploaded_image(name: str, s: Settings = Depends(get_settings)):
    """Serve a stored upload from the configured upload directory."""
    path = s.upload_dir / name
    if not storage.is_upload_name(name) or not path.is_file():
        raise HTTPException(status_code=404, detail="Image not found.")
    return FileResponse(path)


@app.get("/preview", response_class=HTMLResponse, tags=["Screenshot"])
async def preview(request: Request, image: Optional[str] = Query(None, description="URL of the image to show.")):
    return render_preview(resolve_image_url(request, image))


@app.get(
    "/screenshot",
    summary="Screenshot the preview page",
    tags=["Screenshot"],
    responses={
        200: {"description": "PNG attachment.", "content": {"image/png": {}}},
        400: {"description": "No image to screenshot."},
        500: {"description": "Browser launch, navigation or image-load failure."},
    },
)
async def screenshot(
    request: Request,
    image: Optional[str] = Query(None, description="URL of the image to capture."),
    s: Settings = Depends(get_settings),
    capturer: ScreenshotCapturer = Depends(get_capturer),
):
    image_url = resolve_image_url(request, image)
    if not image_url:
        raise HTTPException(status_code=400, detail="No image URL provided. Please upload an image first.")

    artifact: Path = storage.new_artifact_path(s.screenshot_dir)
    try:
        await run_until_disconnect(request, capturer.capture(preview_url_for(request, s, image_url), artifact))
        content = artifact.read_bytes()
    except ClientDisconnected:
        # 499: client closed request
        return PlainTextResponse("Client closed request", status_code=499)
    except CaptureError as e:
        logger.error("Screenshot capture failed for %s: %s", image_url, e)
        return PlainTextResponse(f"Failed to take screenshot: {e}", status_code=500)
    except OSError as e:
        logger.error("Screenshot file unreadable at %s: %s", artifact, e)
        return PlainTextResponse("Failed to take screenshot: file was not created.", status_code=500)
    finally:
        storage.discard(artifact)

    filename = storage.download_name(artifact)
    return Response(
        content=content,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port)

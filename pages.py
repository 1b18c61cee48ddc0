# pages.py
#
# Inline HTML for the landing and preview pages.

from html import escape
from typing import Optional

PREVIEW_IMAGE_ID = "preview-image"
NO_IMAGE_ID = "no-image"

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Image Screenshot</title>
  <style>
    body { font-family: Arial, sans-serif; max-width: 720px; margin: 40px auto; color: #333; }
    form, button { margin-bottom: 16px; }
    #screenshot { display: none; max-width: 100%; border: 1px solid #ccc; }
    #status { color: #666; }
  </style>
</head>
<body>
  <h1>Image Screenshot 📸</h1>
  <form action="/upload" method="post" enctype="multipart/form-data">
    <input type="file" name="image" accept="image/*" required>
    <button type="submit">Upload</button>
  </form>
  <button type="button" onclick="takeScreenshot()">Take screenshot</button>
  <p id="status"></p>
  <img id="screenshot" alt="Screenshot result">
  <script src="/static/script.js"></script>
</body>
</html>
"""

PREVIEW_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Image Preview</title>
  <style>
    html, body {{ margin: 0; padding: 0; background: #fff; }}
    #{image_id} {{ display: block; max-width: 100%; }}
  </style>
</head>
<body>
{body}
</body>
</html>
"""


def render_index() -> str:
    return INDEX_HTML


def render_preview(image_url: Optional[str]) -> str:
    """Preview page for ``image_url``; an explicit no-image page when it is empty."""
    if image_url:
        body = f'  <img id="{PREVIEW_IMAGE_ID}" src="{escape(image_url, quote=True)}" alt="Uploaded image">'
    else:
        body = f'  <p id="{NO_IMAGE_ID}">No image uploaded yet.</p>'
    return PREVIEW_HTML.format(image_id=PREVIEW_IMAGE_ID, body=body)

import json
import logging
from typing import Protocol

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class RenderError(Exception):
    """The renderer could not produce a PDF for the payload."""


class PdfRenderer(Protocol):
    def render(self, payload: dict) -> bytes: ...


class HttpPdfRenderer:
    """Posts the snapshot payload to the external rendering service.

    Layout and typography live entirely on the other side; this client only
    ships JSON and expects ``application/pdf`` bytes back.
    """

    def __init__(self, url: str | None = None, timeout: float | None = None):
        self.url = url or settings.pdf_renderer_url
        self.timeout = timeout or settings.pdf_renderer_timeout

    def render(self, payload: dict) -> bytes:
        if not self.url:
            raise RenderError("PDF renderer is not configured. Set PDF_RENDERER_URL.")
        body = json.dumps(payload, default=str)
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    self.url,
                    content=body,
                    headers={
                        "Content-Type": "application/json",
                        "Accept": "application/pdf",
                    },
                )
            resp.raise_for_status()
        except (httpx.HTTPError, OSError) as e:
            logger.error("PDF render request failed: %s", e)
            raise RenderError(str(e)) from e

        data = resp.content
        if not data.startswith(b"%PDF"):
            raise RenderError("Renderer response is not a PDF")
        return data


renderer = HttpPdfRenderer()

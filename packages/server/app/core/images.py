"""
Image collaborators: the image host (Cloudinary REST API) and the
preprocessor that normalizes uploaded face photos.

The host stores photos as ``authenticated`` assets, so they are only
reachable through signed, time-limited delivery URLs.
"""

from __future__ import annotations

import asyncio
import binascii
import hashlib
import hmac
import io
import time
from typing import Protocol
from urllib.parse import quote, urlencode

import httpx
import structlog
from PIL import Image, ImageOps, UnidentifiedImageError

from app.core.config import Settings, get_settings
from app.core.errors import InvalidImage, UpstreamFailure

log = structlog.get_logger()

API_BASE = "https://api.cloudinary.com/v1_1"
DELIVERY_BASE = "https://res.cloudinary.com"
DELIVERY_TYPE = "authenticated"


class ImageHost(Protocol):
    async def upload(self, data: bytes) -> dict: ...

    async def delete(self, public_id: str) -> None: ...

    def signed_url(self, public_id: str) -> str: ...


# ---------------------------------------------------------------------------
# Cloudinary
# ---------------------------------------------------------------------------

def api_signature(params: dict, api_secret: str) -> str:
    """Cloudinary request signature: sha1 over sorted ``k=v`` pairs + secret."""
    to_sign = "&".join(
        f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


def delivery_auth_token(key_hex: str, url_path: str, expires_at: int) -> str:
    """Expiring token appended to authenticated delivery URLs."""
    parts = [f"exp={expires_at}"]
    to_sign = "~".join(parts + [f"url={quote(url_path, safe='/:')}"])
    digest = hmac.new(binascii.a2b_hex(key_hex), to_sign.encode(), hashlib.sha256).hexdigest()
    return "~".join(parts + [f"hmac={digest}"])


class CloudinaryImageHost:
    """Image host backed by Cloudinary's upload API."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._settings = settings or get_settings()
        self._client = client

    @property
    def configured(self) -> bool:
        s = self._settings
        return bool(s.cloudinary_cloud_name and s.cloudinary_api_key and s.cloudinary_api_secret)

    def _signed_params(self, params: dict) -> dict:
        s = self._settings
        params = {**params, "timestamp": int(time.time())}
        params["signature"] = api_signature(params, s.cloudinary_api_secret)
        params["api_key"] = s.cloudinary_api_key
        return params

    async def _post(self, action: str, data: dict, files: dict | None = None) -> dict:
        if not self.configured:
            raise UpstreamFailure("Image host is not configured")
        url = f"{API_BASE}/{self._settings.cloudinary_cloud_name}/image/{action}"
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._settings.image_host_timeout_seconds)
        )
        try:
            resp = await client.post(url, data=data, files=files)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("image_host.request_failed", action=action, error=str(exc))
            raise UpstreamFailure() from exc
        finally:
            if self._client is None:
                await client.aclose()

    async def upload(self, data: bytes) -> dict:
        params = self._signed_params(
            {"folder": self._settings.cloudinary_folder, "type": DELIVERY_TYPE}
        )
        body = await self._post(
            "upload", params, files={"file": ("face.jpg", data, "image/jpeg")}
        )
        if not body.get("public_id"):
            raise UpstreamFailure("Image upload returned no identifier")
        log.info("image_host.uploaded", public_id=body["public_id"], bytes=len(data))
        return {"public_id": body["public_id"], "version": body.get("version")}

    async def delete(self, public_id: str) -> None:
        params = self._signed_params(
            {"public_id": public_id, "type": DELIVERY_TYPE, "invalidate": "true"}
        )
        body = await self._post("destroy", params)
        log.info("image_host.deleted", public_id=public_id, result=body.get("result"))

    def signed_url(self, public_id: str) -> str:
        """Time-limited URL for an authenticated asset.

        With a delivery token key the CDN URL carries an expiring token;
        otherwise a signed private download URL with ``expires_at`` is used.
        """
        s = self._settings
        now = int(time.time())
        expires_at = now + s.signed_url_ttl_seconds
        if s.cloudinary_auth_token_key:
            path = f"/{s.cloudinary_cloud_name}/image/{DELIVERY_TYPE}/{public_id}"
            token = delivery_auth_token(s.cloudinary_auth_token_key, path, expires_at)
            return f"{DELIVERY_BASE}{path}?__cld_token__={token}"

        params = {
            "public_id": public_id,
            "format": "jpg",
            "type": DELIVERY_TYPE,
            "expires_at": expires_at,
            "timestamp": now,
        }
        params["signature"] = api_signature(params, s.cloudinary_api_secret)
        params["api_key"] = s.cloudinary_api_key
        return f"{API_BASE}/{s.cloudinary_cloud_name}/image/download?{urlencode(params)}"


# ---------------------------------------------------------------------------
# Preprocessing
# ---------------------------------------------------------------------------

class ImagePreprocessor:
    """Normalize a raw upload into a bounded RGB JPEG."""

    def __init__(self, settings: Settings | None = None):
        s = settings or get_settings()
        self.max_dimension = s.image_max_dimension
        self.max_bytes = s.image_upload_max_bytes
        self.quality = s.image_jpeg_quality

    async def process(self, raw: bytes) -> bytes:
        if not raw:
            raise InvalidImage("Image is empty")
        if len(raw) > self.max_bytes:
            raise InvalidImage("Image exceeds the maximum upload size")
        return await asyncio.to_thread(self._normalize, raw)

    def _normalize(self, raw: bytes) -> bytes:
        try:
            with Image.open(io.BytesIO(raw)) as src:
                img = ImageOps.exif_transpose(src).convert("RGB")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise InvalidImage("Unsupported or corrupt image") from exc

        img.thumbnail((self.max_dimension, self.max_dimension))
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=self.quality)
        return out.getvalue()


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

def get_image_host() -> ImageHost:
    return CloudinaryImageHost()


def get_preprocessor() -> ImagePreprocessor:
    return ImagePreprocessor()

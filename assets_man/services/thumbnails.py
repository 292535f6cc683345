"""
Thumbnail generation for stored assets.

Every thumbnail is a 300x300 WebP produced by one of three renderers chosen
from the asset's MIME type:

* images are cover-cropped with Pillow,
* PDFs have their first page rasterised with pdfium and then cropped like an image,
* videos have a single frame pulled out by ``ffmpeg`` (at 1s, falling back to 0.1s).

Results are reported as :class:`ThumbnailResult` values rather than raised so
batch callers can keep going past individual failures.
"""
from __future__ import annotations

import io
import logging
import os
import subprocess
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Sequence

import pypdfium2 as pdfium
from PIL import Image, ImageOps
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..models.asset import Asset
from ..models.lifecycle import LifecycleState
from .object_storage import ObjectStorage, StorageError, generate_thumbnail_key

THUMBNAIL_SIZE = (300, 300)
THUMBNAIL_QUALITY = 80
THUMBNAIL_CONTENT_TYPE = "image/webp"
PDF_TARGET_WIDTH = 600
VIDEO_FRAME_TIMESTAMPS = (1.0, 0.1)
BATCH_SIZE = 5
THUMBNAIL_URL_EXPIRES = 3600

IMAGE_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/bmp",
    "image/tiff",
    "image/avif",
})

VIDEO_TYPES = {
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
    "video/x-matroska": ".mkv",
}

PDF_TYPES = frozenset({"application/pdf"})

FrameExtractor = Callable[[str, str, float], None]


class RenderError(Exception):
    pass


@dataclass(frozen=True)
class ThumbnailResult:
    success: bool
    thumbnail_key: str | None = None
    error: str | None = None


def classify(mime_type: str | None) -> str | None:
    mime = (mime_type or "").lower()
    if mime in IMAGE_TYPES:
        return "image"
    if mime in VIDEO_TYPES:
        return "video"
    if mime in PDF_TYPES:
        return "pdf"
    return None


def can_generate_thumbnail(mime_type: str | None) -> bool:
    return classify(mime_type) is not None


def chunked(items: Sequence[str], size: int = BATCH_SIZE) -> list[list[str]]:
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


def _fit_to_webp(image: Image.Image) -> bytes:
    image = ImageOps.exif_transpose(image)
    if image.mode in ("P", "LA", "PA"):
        image = image.convert("RGBA")
    elif image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGB")
    thumb = ImageOps.fit(image, THUMBNAIL_SIZE, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
    buf = io.BytesIO()
    thumb.save(buf, format="WEBP", quality=THUMBNAIL_QUALITY)
    return buf.getvalue()


def render_image(data: bytes) -> bytes:
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return _fit_to_webp(image)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise RenderError(f"image decode failed: {exc}") from exc


def render_pdf(data: bytes) -> bytes:
    """Rasterise page one at roughly 600px wide, then crop like an image."""
    try:
        document = pdfium.PdfDocument(data)
    except pdfium.PdfiumError as exc:
        raise RenderError(f"pdf open failed: {exc}") from exc
    try:
        if len(document) == 0:
            raise RenderError("pdf has no pages")
        page = document[0]
        try:
            width = page.get_width()
            scale = PDF_TARGET_WIDTH / width if width else 1.0
            image = page.render(scale=scale).to_pil()
        finally:
            page.close()
    except pdfium.PdfiumError as exc:
        raise RenderError(f"pdf render failed: {exc}") from exc
    finally:
        document.close()
    return _fit_to_webp(image)


def extract_video_frame(source_path: str, output_path: str, timestamp: float, ffmpeg_path: str = "ffmpeg") -> None:
    command = [
        ffmpeg_path,
        "-hide_banner",
        "-loglevel", "error",
        "-y",
        "-ss", f"{timestamp:.2f}",
        "-i", source_path,
        "-frames:v", "1",
        output_path,
    ]
    try:
        completed = subprocess.run(command, capture_output=True, check=False)
    except OSError as exc:
        raise RenderError(f"ffmpeg could not be started: {exc}") from exc
    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        raise RenderError(f"ffmpeg exited with {completed.returncode}: {stderr[-300:]}")
    # a seek past the end of a short clip exits 0 but writes nothing
    if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
        raise RenderError(f"no frame at {timestamp}s")


class ThumbnailPipeline:
    def __init__(
        self,
        session_factory: sessionmaker,
        storage: ObjectStorage,
        logger: logging.Logger | None = None,
        frame_extractor: FrameExtractor | None = None,
        batch_size: int = BATCH_SIZE,
    ):
        self.session_factory = session_factory
        self.storage = storage
        self.logger = logger or logging.getLogger("assets_man.thumbnails")
        self.frame_extractor = frame_extractor or extract_video_frame
        self.batch_size = batch_size

    def render_video(self, data: bytes, mime_type: str) -> bytes:
        suffix = VIDEO_TYPES.get(mime_type, ".bin")
        with tempfile.TemporaryDirectory(prefix="assets-man-video-") as workdir:
            source_path = os.path.join(workdir, f"source{suffix}")
            frame_path = os.path.join(workdir, "frame.png")
            with open(source_path, "wb") as handle:
                handle.write(data)

            last_error: RenderError | None = None
            for timestamp in VIDEO_FRAME_TIMESTAMPS:
                try:
                    self.frame_extractor(source_path, frame_path, timestamp)
                except RenderError as exc:
                    self.logger.debug("Frame extraction failed", extra={"timestamp": timestamp, "error": str(exc)})
                    last_error = exc
                    continue
                with open(frame_path, "rb") as handle:
                    return render_image(handle.read())
            raise RenderError(f"video frame extraction failed: {last_error}")

    def _render(self, kind: str, data: bytes, mime_type: str) -> bytes:
        if kind == "image":
            return render_image(data)
        if kind == "pdf":
            return render_pdf(data)
        return self.render_video(data, mime_type)

    def generate_thumbnail(self, asset_id: str) -> ThumbnailResult:
        with self.session_factory() as db:
            asset = db.get(Asset, asset_id)
            if asset is None:
                return ThumbnailResult(success=False, error="Asset not found")
            if asset.thumbnail_key:
                return ThumbnailResult(success=True, thumbnail_key=asset.thumbnail_key)

            kind = classify(asset.mime_type)
            if kind is None:
                return ThumbnailResult(success=False, error=f"Unsupported file type: {asset.mime_type}")

            try:
                if not self.storage.exists(asset.storage_key):
                    self.logger.warning("Thumbnail source missing", extra={"asset_id": asset_id, "key": asset.storage_key})
                    return ThumbnailResult(success=False, error="Source file not found in storage")
                data = self.storage.read_bytes(asset.storage_key)
            except StorageError as exc:
                self.logger.error("Thumbnail source read failed", extra={"asset_id": asset_id, "error": str(exc)})
                return ThumbnailResult(success=False, error="Failed to read source file")

            try:
                buffer = self._render(kind, data, asset.mime_type.lower())
            except RenderError as exc:
                self.logger.warning("Thumbnail render failed", extra={"asset_id": asset_id, "kind": kind, "error": str(exc)})
                return ThumbnailResult(success=False, error=f"Failed to generate thumbnail: {exc}")

            thumbnail_key = generate_thumbnail_key(asset.storage_key)
            try:
                self.storage.upload_buffer(thumbnail_key, buffer, THUMBNAIL_CONTENT_TYPE)
            except StorageError as exc:
                self.logger.error("Thumbnail upload failed", extra={"asset_id": asset_id, "error": str(exc)})
                return ThumbnailResult(success=False, error=f"Failed to upload thumbnail: {exc}")

            try:
                asset.thumbnail_key = thumbnail_key
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                self.logger.error("Thumbnail key not saved", extra={"asset_id": asset_id, "error": str(exc)})
                return ThumbnailResult(success=False, error="Failed to save thumbnail")

            self.logger.info("Thumbnail generated", extra={"asset_id": asset_id, "key": thumbnail_key})
            return ThumbnailResult(success=True, thumbnail_key=thumbnail_key)

    def generate_batch(self, asset_ids: Sequence[str]) -> list[ThumbnailResult]:
        results: list[ThumbnailResult] = []
        for chunk in chunked(list(asset_ids), self.batch_size):
            with ThreadPoolExecutor(max_workers=len(chunk), thread_name_prefix="thumbnail") as pool:
                results.extend(pool.map(self.generate_thumbnail, chunk))
        return results

    def regenerate_missing(self, user_id: str) -> dict:
        with self.session_factory() as db:
            candidates = (
                db.query(Asset.id, Asset.mime_type)
                .filter(
                    Asset.owner_id == user_id,
                    Asset.state == LifecycleState.ACTIVE,
                    Asset.thumbnail_key.is_(None),
                )
                .order_by(Asset.created_at.desc())
                .all()
            )
        asset_ids = [asset_id for asset_id, mime_type in candidates if can_generate_thumbnail(mime_type)]
        results = self.generate_batch(asset_ids)
        succeeded = sum(1 for result in results if result.success)
        return {"processed": len(results), "succeeded": succeeded, "failed": len(results) - succeeded}

    def get_thumbnail_url(self, asset: Asset) -> str | None:
        if not asset.thumbnail_key:
            return None
        try:
            return self.storage.get_presigned_download_url(asset.thumbnail_key, THUMBNAIL_URL_EXPIRES).url
        except StorageError:
            return None

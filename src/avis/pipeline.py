from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
import io
import logging
from pathlib import Path

import numpy as np
from PIL import Image, ImageCms, ImageDraw, ImageFont
from pillow_heif import register_heif_opener
import pillow_jxl  # noqa: F401  (registers the JPEG XL plugin with Pillow)

from avis.config import AppConfig
from avis.exiftool import ExifToolError
from avis.icc import ProfileTable, profile_from_bytes
from avis.jobs import BackgroundJob
from avis.media.formats import is_jpeg, is_jxl, is_raw, skips_orientation
from avis.metadata import MetadataCache, Orientation
from avis.models import METADATA_ORIENTATION, METADATA_PROFILE_DESCRIPTION
from avis.texture import TextureHandle, TextureRegistry, rgb_to_rgba
from avis.util.timing import StageTimer

register_heif_opener()

logger = logging.getLogger(__name__)

FALLBACK_SIZE = (800, 600)


@dataclass(slots=True, eq=False)
class DecodedImage:
    pixels: np.ndarray
    width: int
    height: int
    texture: TextureHandle | None
    metadata: dict[str, str] = field(default_factory=dict)
    is_fallback: bool = False

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def release(self) -> None:
        if self.texture is not None:
            self.texture.release()


@lru_cache(maxsize=1)
def _fallback_pixels() -> np.ndarray:
    img = Image.new("RGB", FALLBACK_SIZE, (30, 30, 30))
    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default()
    text = "Failed to load image"
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (FALLBACK_SIZE[0] - (right - left)) // 2
    y = (FALLBACK_SIZE[1] - (bottom - top)) // 2
    draw.text((x, y), text, fill=(150, 150, 150), font=font)
    return np.array(img)


def _rgb_array(img: Image.Image) -> np.ndarray:
    if img.mode != "RGB":
        img = img.convert("RGB")
    return np.array(img)


def decode_jxl(buffer: bytes, file_name: str) -> np.ndarray | None:
    # One image per thread already, so the decoder runs single threaded.
    try:
        with Image.open(io.BytesIO(buffer)) as img:
            width, height = img.size
            raw = img.convert("RGB").tobytes()
    except Exception as exc:
        logger.error("Failure decoding JXL buffer for %s -> %s", file_name, exc)
        return None

    flat = np.frombuffer(raw, dtype=np.uint8)
    if flat.size != width * height * 3:
        logger.error("Failure building rgb image from JXL decoded buffer for %s", file_name)
        return None
    return flat.reshape(height, width, 3).copy()


def decode_jpeg(buffer: bytes, file_name: str, target_size: int | None = None) -> np.ndarray | None:
    try:
        with Image.open(io.BytesIO(buffer)) as img:
            if target_size:
                # DCT-domain downscale; never below the requested box.
                img.draft("RGB", (target_size, target_size))
            return _rgb_array(img)
    except Exception as exc:
        logger.info("%s -> Failure decoding jpeg, trying generic decoder: %s", file_name, exc)
        return decode_generic(buffer, file_name)


def decode_generic(buffer: bytes, file_name: str) -> np.ndarray | None:
    try:
        with Image.open(io.BytesIO(buffer)) as img:
            return _rgb_array(img)
    except Exception as exc:
        logger.info("%s -> Failure decoding image: %s", file_name, exc)
        return None


def decode(buffer: bytes, path: Path, target_size: int | None = None) -> np.ndarray | None:
    if is_jxl(path):
        return decode_jxl(buffer, path.name)
    # RAW files arrive here as their embedded JPEG preview.
    if is_jpeg(path) or is_raw(path):
        return decode_jpeg(buffer, path.name, target_size)
    return decode_generic(buffer, path.name)


def target_dimensions(width: int, height: int, target_size: int) -> tuple[int, int] | None:
    """Destination size with the longer side capped at ``target_size``; ``None`` if unchanged."""
    longer = max(width, height)
    if longer <= target_size or width == 0 or height == 0:
        return None
    if width >= height:
        dest_w = target_size
        dest_h = int(height * target_size / width)
    else:
        dest_h = target_size
        dest_w = int(width * target_size / height)
    if dest_w == 0 or dest_h == 0:
        return None
    return dest_w, dest_h


def resize(pixels: np.ndarray, target_size: int, file_name: str = "") -> np.ndarray:
    height, width = pixels.shape[:2]
    dims = target_dimensions(width, height, target_size)
    if dims is None:
        return pixels
    try:
        src = Image.fromarray(pixels)
        out = src.resize(dims, Image.Resampling.LANCZOS)
        resized = np.array(out)
    except (ValueError, OSError, MemoryError) as exc:
        logger.error("%s -> Failure resizing image: %s", file_name, exc)
        return pixels
    if resized.shape != (dims[1], dims[0], 3):
        logger.error("%s -> Failure building rgb image from resized image", file_name)
        return pixels
    return resized


def orient(pixels: np.ndarray, orientation: Orientation) -> np.ndarray:
    if orientation is Orientation.MIRROR_HORIZONTAL:
        return pixels[:, ::-1]
    if orientation is Orientation.ROTATE_180:
        return pixels[::-1, ::-1]
    if orientation is Orientation.MIRROR_VERTICAL:
        return pixels[::-1]
    if orientation is Orientation.MIRROR_HORIZONTAL_ROTATE_270:
        return np.rot90(pixels[:, ::-1], k=1)
    if orientation is Orientation.ROTATE_90_CW:
        return np.rot90(pixels, k=-1)
    if orientation is Orientation.MIRROR_HORIZONTAL_ROTATE_90_CW:
        return np.rot90(pixels[:, ::-1], k=-1)
    if orientation is Orientation.ROTATE_270_CW:
        return np.rot90(pixels, k=1)
    return pixels


class ImagePipeline:
    """Turns a path into a display-ready :class:`DecodedImage` on a background thread.

    Every stage can fail. Read and decode failures produce the fallback image,
    resize and color failures keep the previous buffer.
    """

    def __init__(
        self,
        cache: MetadataCache,
        textures: TextureRegistry,
        output_profile: str = "srgb",
        profiles: ProfileTable | None = None,
    ) -> None:
        self.cache = cache
        self.textures = textures
        self.output_profile = output_profile
        self.profiles = profiles or ProfileTable()

    @classmethod
    def from_config(cls, cfg: AppConfig, cache: MetadataCache, textures: TextureRegistry) -> "ImagePipeline":
        return cls(
            cache,
            textures,
            output_profile=cfg.general.output_icc_profile,
            profiles=ProfileTable(cfg.general.icc_dirs),
        )

    def load(self, path: Path, target_size: int | None = None) -> BackgroundJob[DecodedImage | None]:
        path = Path(path)
        return BackgroundJob.spawn(lambda: self.run(path, target_size), name=f"load:{path.name}")

    def run(self, path: Path, target_size: int | None = None) -> DecodedImage | None:
        path = Path(path)
        name = path.name
        timer = StageTimer(name, logger)

        buffer = self.acquire(path)
        if buffer is None:
            return self.fallback(name)
        timer.lap("reading into buffer")

        pixels = decode(buffer, path, target_size)
        if pixels is None:
            return self.fallback(name)
        timer.lap("decoding")

        if target_size:
            pixels = resize(pixels, target_size, name)
            timer.lap("resizing")

        metadata = self.cache.get_metadata(path) or {}
        timer.lap("reading metadata")

        if not skips_orientation(path):
            pixels = orient(pixels, Orientation.from_metadata(metadata.get(METADATA_ORIENTATION)))
            timer.lap("orienting")

        pixels = np.ascontiguousarray(pixels)
        description = metadata.get(METADATA_PROFILE_DESCRIPTION)
        if description:
            self.apply_color_management(pixels, description, path)
            timer.lap("applying CC")

        image = self.upload(pixels, metadata, name)
        timer.lap("uploading texture")
        if image is None:
            return self.fallback(name)
        return image

    def acquire(self, path: Path) -> bytes | None:
        if is_raw(path):
            try:
                return self.cache.exiftool.preview_image(path)
            except ExifToolError as exc:
                logger.error("Failure fetching raw image preview for %s -> %s", path.name, exc)
                return None

        try:
            return path.read_bytes()
        except OSError as exc:
            logger.error("Failure opening image %s -> %s", path, exc)
            self.cache.delete(path)
            return None

    def apply_color_management(self, pixels: np.ndarray, description: str, path: Path) -> bool:
        """Convert ``pixels`` in place from the embedded profile to the output profile."""
        if self.output_profile.lower() in description.lower():
            logger.info("Input %s and output %s profiles are the same -> skipping", description, self.output_profile)
            return False

        input_profile = self.profiles.lookup(description)
        if input_profile is None:
            logger.info("No built-in ICC profile matching %s, extracting from image", description)
            data = self.cache.extract_icc(path)
            if data is None:
                return False
            try:
                input_profile = profile_from_bytes(data)
            except (OSError, ValueError, ImageCms.PyCMSError) as exc:
                logger.error("Failed constructing input profile from ICC data -> %s", exc)
                return False

        output_profile = self.profiles.lookup(self.output_profile)
        if output_profile is None:
            logger.error("Badly configured output ICC profile -> %s", self.output_profile)
            return False

        try:
            transform = ImageCms.buildTransform(
                input_profile,
                output_profile,
                "RGB",
                "RGB",
                renderingIntent=ImageCms.Intent.PERCEPTUAL,
            )
            img = Image.fromarray(pixels)
            ImageCms.applyTransform(img, transform, inPlace=True)
        except (ImageCms.PyCMSError, OSError, ValueError) as exc:
            logger.error("Failure applying ICC profile to image -> %s", exc)
            return False

        pixels[...] = np.asarray(img)
        return True

    def upload(self, pixels: np.ndarray, metadata: dict[str, str], label: str, is_fallback: bool = False) -> DecodedImage | None:
        try:
            handle = self.textures.register(rgb_to_rgba(pixels), label=label)
        except (ValueError, MemoryError) as exc:
            logger.error("%s -> Failure registering texture: %s", label, exc)
            return None
        return DecodedImage(
            pixels=pixels,
            width=handle.width,
            height=handle.height,
            texture=handle,
            metadata=metadata,
            is_fallback=is_fallback,
        )

    def fallback(self, label: str) -> DecodedImage | None:
        return self.upload(_fallback_pixels().copy(), {}, label, is_fallback=True)

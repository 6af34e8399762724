import io
from pathlib import Path

import numpy as np
from PIL import Image, ImageCms

from avis.db import Database
from avis.exiftool import ExifToolError
from avis.metadata import MetadataCache, Orientation
from avis.pipeline import ImagePipeline, decode, orient, resize, target_dimensions
from avis.texture import TextureRegistry


class _StubExifTool:
    def __init__(self, fields: dict[str, str] | None = None, icc: bytes | None = None, preview: bytes | None = None) -> None:
        self.fields = fields or {}
        self.icc = icc
        self.preview = preview

    def read(self, paths) -> str:
        if not self.fields:
            raise ExifToolError("no output")
        return "".join(f"{k:<32}: {v}\n" for k, v in self.fields.items())

    def icc_profile(self, path) -> bytes:
        if self.icc is None:
            raise ExifToolError("no icc")
        return self.icc

    def preview_image(self, path) -> bytes:
        if self.preview is None:
            raise ExifToolError("no preview")
        return self.preview


def _pipeline(tmp_path: Path, exiftool: _StubExifTool) -> ImagePipeline:
    cache = MetadataCache(Database(tmp_path / "avis.sqlite3"), exiftool)
    assert cache.initialize()
    return ImagePipeline(cache, TextureRegistry(), output_profile="srgb")


def _write_image(path: Path, size: tuple[int, int], fmt: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, (200, 40, 40)).save(path, format=fmt)
    return path


def _jpeg_bytes(size: tuple[int, int]) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (10, 120, 10)).save(buf, format="JPEG")
    return buf.getvalue()


def test_target_dimensions() -> None:
    assert target_dimensions(4000, 3000, 1000) == (1000, 750)
    assert target_dimensions(3000, 4000, 1000) == (750, 1000)
    assert target_dimensions(800, 600, 1000) is None
    assert target_dimensions(5000, 1, 1000) is None


def test_resize_never_upscales() -> None:
    pixels = np.zeros((10, 20, 3), dtype=np.uint8)
    assert resize(pixels, 100) is pixels
    assert resize(pixels, 10).shape == (5, 10, 3)


def test_orientation_rotate_90_cw() -> None:
    pixels = np.arange(2 * 3 * 3, dtype=np.uint8).reshape(2, 3, 3)
    rotated = orient(pixels, Orientation.ROTATE_90_CW)
    assert rotated.shape == (3, 2, 3)
    # The bottom-left pixel ends up top-left after a clockwise turn.
    assert (rotated[0, 0] == pixels[1, 0]).all()
    assert (rotated[0, 1] == pixels[0, 0]).all()


def test_orientation_mirror_and_identity() -> None:
    pixels = np.arange(2 * 3 * 3, dtype=np.uint8).reshape(2, 3, 3)
    assert (orient(pixels, Orientation.NORMAL) == pixels).all()
    assert (orient(pixels, Orientation.MIRROR_HORIZONTAL)[:, 0] == pixels[:, 2]).all()
    assert (orient(pixels, Orientation.ROTATE_180)[0, 0] == pixels[1, 2]).all()
    assert orient(pixels, Orientation.ROTATE_270_CW).shape == (3, 2, 3)


def test_decode_rejects_garbage() -> None:
    assert decode(b"not an image", Path("broken.jpg")) is None
    assert decode(b"not an image", Path("broken.png")) is None


def test_load_png_applies_orientation(tmp_path: Path) -> None:
    path = _write_image(tmp_path / "wide.png", (40, 20), "PNG")
    pipeline = _pipeline(tmp_path, _StubExifTool({"File Name": "wide.png", "Orientation": "Rotate 90 CW"}))

    image = pipeline.load(path).join(timeout=30)

    assert image is not None
    assert not image.is_fallback
    assert image.size == (20, 40)
    assert image.metadata["Orientation"] == "Rotate 90 CW"
    assert len(pipeline.textures) == 1
    image.release()
    image.release()
    assert len(pipeline.textures) == 0


def test_load_jpeg_with_target_size(tmp_path: Path) -> None:
    path = _write_image(tmp_path / "big.jpg", (400, 200), "JPEG")
    pipeline = _pipeline(tmp_path, _StubExifTool())

    image = pipeline.run(path, target_size=100)

    assert image is not None
    assert image.size == (100, 50)
    assert image.metadata == {}


def test_raw_uses_embedded_preview(tmp_path: Path) -> None:
    path = tmp_path / "shot.RAF"
    path.write_bytes(b"raw sensor data")
    pipeline = _pipeline(tmp_path, _StubExifTool(preview=_jpeg_bytes((60, 30))))

    image = pipeline.run(path)

    assert image is not None
    assert not image.is_fallback
    assert image.size == (60, 30)


def test_missing_file_yields_fallback_and_drops_record(tmp_path: Path) -> None:
    pipeline = _pipeline(tmp_path, _StubExifTool())
    missing = tmp_path / "gone.jpg"
    with pipeline.cache.db.connect() as conn:
        conn.execute("INSERT INTO file(path, metadata) VALUES (?, '{}')", (str(missing),))

    image = pipeline.run(missing)

    assert image is not None
    assert image.is_fallback
    assert image.metadata == {}
    assert pipeline.cache.count() == 0


def test_corrupt_file_yields_fallback_and_keeps_record(tmp_path: Path) -> None:
    path = tmp_path / "corrupt.jpg"
    path.write_bytes(b"\xff\xd8 truncated")
    pipeline = _pipeline(tmp_path, _StubExifTool())
    with pipeline.cache.db.connect() as conn:
        conn.execute("INSERT INTO file(path, metadata) VALUES (?, '{}')", (str(path),))

    image = pipeline.run(path)

    assert image is not None
    assert image.is_fallback
    assert pipeline.cache.count() == 1


def test_color_management_skips_matching_profile(tmp_path: Path) -> None:
    pipeline = _pipeline(tmp_path, _StubExifTool())
    pixels = np.full((4, 4, 3), 90, dtype=np.uint8)
    assert not pipeline.apply_color_management(pixels, "sRGB IEC61966-2.1", tmp_path / "a.jpg")
    assert (pixels == 90).all()


def test_color_management_leaves_pixels_when_profile_unavailable(tmp_path: Path) -> None:
    pipeline = _pipeline(tmp_path, _StubExifTool())
    pixels = np.full((4, 4, 3), 90, dtype=np.uint8)
    assert not pipeline.apply_color_management(pixels, "Some Camera Profile", tmp_path / "a.jpg")
    assert (pixels == 90).all()


def test_color_management_with_extracted_profile(tmp_path: Path) -> None:
    icc = ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB")).tobytes()
    pipeline = _pipeline(tmp_path, _StubExifTool(icc=icc))
    pixels = np.full((4, 4, 3), 128, dtype=np.uint8)

    assert pipeline.apply_color_management(pixels, "Camera Embedded", tmp_path / "a.jpg")
    assert pixels.shape == (4, 4, 3)
    assert np.abs(pixels.astype(int) - 128).max() <= 3


def test_color_management_rejects_bad_icc_bytes(tmp_path: Path) -> None:
    pipeline = _pipeline(tmp_path, _StubExifTool(icc=b"garbage"))
    pixels = np.full((2, 2, 3), 7, dtype=np.uint8)
    assert not pipeline.apply_color_management(pixels, "Camera Embedded", tmp_path / "a.jpg")
    assert (pixels == 7).all()


def test_jxl_decodes_and_skips_orientation(tmp_path: Path) -> None:
    path = _write_image(tmp_path / "photo.jxl", (40, 20), "JXL")
    pipeline = _pipeline(tmp_path, _StubExifTool({"File Name": "photo.jxl", "Orientation": "Rotate 90 CW"}))

    assert decode(path.read_bytes(), path).shape == (20, 40, 3)
    image = pipeline.run(path)

    assert image is not None
    assert not image.is_fallback
    assert image.size == (40, 20)
    assert np.abs(image.pixels[10, 20].astype(int) - [200, 40, 40]).max() <= 12


def test_heic_decodes_and_skips_orientation(tmp_path: Path) -> None:
    path = _write_image(tmp_path / "photo.heic", (64, 32), "HEIF")
    pipeline = _pipeline(tmp_path, _StubExifTool({"File Name": "photo.heic", "Orientation": "Rotate 270 CW"}))

    image = pipeline.run(path)

    assert image is not None
    assert not image.is_fallback
    assert image.size == (64, 32)

from pathlib import Path

import numpy as np
from PIL import Image, ImageCms

from avis.icc import ADOBE_RGB, DISPLAY_P3, SRGB, ProfileTable, builtin_name, bundled_profile_bytes


def test_builtin_name_matches_descriptions() -> None:
    assert builtin_name("sRGB IEC61966-2.1") == SRGB
    assert builtin_name("Display P3") == DISPLAY_P3
    assert builtin_name("Adobe RGB (1998)") == ADOBE_RGB
    assert builtin_name("Nikon Camera Profile") is None


def test_bundled_profiles_resolve_without_dirs(tmp_path: Path) -> None:
    table = ProfileTable([tmp_path / "empty"])
    for description in ["sRGB IEC61966-2.1", "display p3", "adobe rgb", "Adobe RGB (1998)"]:
        assert isinstance(table.lookup(description), ImageCms.ImageCmsProfile), description
    assert table.lookup("Camera Profile") is None


def test_bundled_profiles_carry_their_names() -> None:
    for name in [SRGB, DISPLAY_P3, ADOBE_RGB]:
        data = bundled_profile_bytes(name)
        assert data[36:40] == b"acsp"
        assert int.from_bytes(data[:4], "big") == len(data)

    profile = ProfileTable().lookup("display p3")
    assert "Display P3" in ImageCms.getProfileDescription(profile)


def test_bundled_p3_to_srgb_transform() -> None:
    table = ProfileTable()
    transform = ImageCms.buildTransform(table.lookup("display p3"), table.lookup("srgb"), "RGB", "RGB")
    img = Image.fromarray(np.array([[[255, 0, 0], [128, 128, 128]]], dtype=np.uint8))

    out = np.asarray(ImageCms.applyTransform(img, transform))

    # P3 red lies outside sRGB; grey stays grey.
    assert out[0, 0, 0] == 255
    assert out[0, 0, 1] < 20
    assert abs(int(out[0, 1, 0]) - int(out[0, 1, 2])) <= 2


def test_profiles_in_configured_dirs_take_precedence(tmp_path: Path) -> None:
    icc_dir = tmp_path / "icc"
    icc_dir.mkdir()
    data = ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB")).tobytes()
    (icc_dir / "Display P3.icc").write_bytes(data)

    profile = ProfileTable([icc_dir]).lookup("Display P3")

    assert "Display P3" not in ImageCms.getProfileDescription(profile)


def test_unreadable_override_falls_back_to_bundled(tmp_path: Path) -> None:
    icc_dir = tmp_path / "broken"
    icc_dir.mkdir()
    (icc_dir / "AdobeRGB1998.icc").write_bytes(b"not a profile")

    profile = ProfileTable([icc_dir]).lookup("adobe rgb")

    assert "ClayRGB" in ImageCms.getProfileDescription(profile)

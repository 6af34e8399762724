from pathlib import Path

from avis.crawler import crawl, group_raw_jpg_paths, resolve_targets
from avis.media.formats import is_raw, is_valid_image, skips_orientation


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x")
    return path


def test_group_raw_jpg_prefers_non_raw() -> None:
    paths = [Path("a.RAF"), Path("a.JPG"), Path("b.RAF")]
    assert group_raw_jpg_paths(paths) == [Path("a.JPG"), Path("b.RAF")]


def test_group_raw_jpg_keeps_other_directories_apart() -> None:
    paths = [Path("x/a.NEF"), Path("y/a.jpg"), Path("x/c.png")]
    assert group_raw_jpg_paths(paths) == [Path("x/a.NEF"), Path("x/c.png"), Path("y/a.jpg")]


def test_extension_allow_list() -> None:
    assert is_valid_image("IMG_0001.CR3")
    assert is_valid_image("photo.jxl")
    assert not is_valid_image("notes.txt")
    assert not is_valid_image("README")
    assert is_raw("a.dng")
    assert not is_raw("a.jpg")
    assert skips_orientation("a.HEIC")
    assert not skips_orientation("a.jpg")


def test_crawl_flat_and_recursive(tmp_path: Path) -> None:
    a = _touch(tmp_path / "a.jpg")
    _touch(tmp_path / "notes.txt")
    nested = _touch(tmp_path / "sub" / "deeper" / "b.png")

    assert crawl(tmp_path) == [a]
    assert crawl(tmp_path, flatten=True) == sorted([a, nested])


def test_resolve_targets(tmp_path: Path) -> None:
    a = _touch(tmp_path / "a.jpg")
    b = _touch(tmp_path / "b.jpg")
    _touch(tmp_path / "c.txt")

    assert resolve_targets([str(tmp_path)]) == ([a, b], None)
    assert resolve_targets(["b.jpg"], cwd=tmp_path) == ([a, b], b)
    assert resolve_targets(["a.jpg", "c.txt", "b.jpg"], cwd=tmp_path) == ([a, b], None)


def test_group_raw_jpg_edge_cases() -> None:
    assert group_raw_jpg_paths([]) == []
    assert group_raw_jpg_paths([Path("photo1.RAF"), Path("photo1.RAF")]) == [Path("photo1.RAF")]
    unsorted = [Path("photo3.RAF"), Path("photo1.JPG"), Path("photo2.RAF"), Path("photo1.RAF")]
    assert group_raw_jpg_paths(unsorted) == [Path("photo1.JPG"), Path("photo2.RAF"), Path("photo3.RAF")]

from avis.metadata import (
    Orientation,
    format_string_with_metadata,
    parse_exiftool_output,
)
from avis.models import MetadataRecord


def test_format_string_with_metadata() -> None:
    fmt = "$(#File Name#)$( • ƒ#Aperture#)$( • #ISO# ISO)"
    metadata = {"File Name": "test.jpg", "Aperture": "5.0", "ISO": "500"}
    assert format_string_with_metadata(fmt, metadata) == "test.jpg • ƒ5.0 • 500 ISO"


def test_format_string_drops_tokens_with_missing_fields() -> None:
    fmt = "$(#File Name#)$( • ƒ#Aperture#)$( • #ISO# ISO)"
    assert format_string_with_metadata(fmt, {"File Name": "test.jpg", "ISO": "500"}) == "test.jpg • 500 ISO"
    assert format_string_with_metadata(fmt, {}) == ""


def test_format_string_keeps_plain_text() -> None:
    assert format_string_with_metadata("Shot: $(#ISO#)", {"ISO": "100"}) == "Shot: 100"


def test_parse_multi_file_output() -> None:
    output = (
        "======== /photos/a.jpg\n"
        "File Name                       : a.jpg\n"
        "Date/Time Original              : 2023:05:01 10:11:12\n"
        "Orientation                     : Rotate 90 CW\n"
        "======== /photos/b.jpg\n"
        "File Name                       : b.jpg\n"
        "ISO                             : 800\n"
        "    2 image files read\n"
    )
    records = parse_exiftool_output(output)
    assert [path for path, _ in records] == ["/photos/a.jpg", "/photos/b.jpg"]
    assert records[0][1]["Date/Time Original"] == "2023:05:01 10:11:12"
    assert records[0][1]["Orientation"] == "Rotate 90 CW"
    assert records[1][1] == {"File Name": "b.jpg", "ISO": "800"}


def test_parse_single_file_output_has_no_header() -> None:
    output = "File Name                       : c.png\r\nImage Size                      : 10x20\r\n"
    records = parse_exiftool_output(output, single_path="/photos/c.png")
    assert records == [("/photos/c.png", {"File Name": "c.png", "Image Size": "10x20"})]


def test_parse_empty_output() -> None:
    assert parse_exiftool_output("") == []
    assert parse_exiftool_output("", single_path="/x.jpg") == []


def test_orientation_from_metadata() -> None:
    assert Orientation.from_metadata("Rotate 90 CW") is Orientation.ROTATE_90_CW
    assert Orientation.from_metadata(" Mirror vertical ") is Orientation.MIRROR_VERTICAL
    assert Orientation.from_metadata("Unknown (0)") is Orientation.NORMAL
    assert Orientation.from_metadata(None) is Orientation.NORMAL


def test_record_accessors() -> None:
    rec = MetadataRecord(
        path="/a.jpg",
        fields={"ISO": "400", "Aperture": "f/2", "Orientation": "Rotate 180", "Profile Description": "Display P3"},
    )
    assert rec.get_float("ISO") == 400.0
    assert rec.get_float("Aperture") is None
    assert rec.get_float("Missing") is None
    assert rec.orientation == "Rotate 180"
    assert rec.profile_description == "Display P3"

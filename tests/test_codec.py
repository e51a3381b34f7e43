"""Tests for tools.image_ops.codec."""

import base64

import pytest

from conftest import JPEG_B64, PNG_B64
from listing_guardian.tools.image_ops.codec import (
    EncodedImage,
    extract,
    sniff_media_type,
)


class TestDataUri:

    def test_declared_type_and_body(self):
        img = extract(f"data:image/png;base64,{PNG_B64}")
        assert img == EncodedImage(media_type="image/png", data=PNG_B64)

    def test_jpg_is_normalised(self):
        img = extract(f"data:image/jpg;base64,{JPEG_B64}")
        assert img.media_type == "image/jpeg"
        assert img.data == JPEG_B64

    def test_uppercase_declared_type(self):
        assert extract(f"data:IMAGE/WEBP;base64,UklGRiQAAABXRUJQ").media_type == "image/webp"

    def test_disallowed_type_falls_back_to_sniffing(self):
        img = extract(f"data:image/tiff;base64,{PNG_B64}")
        assert img.media_type == "image/png"

    def test_disallowed_type_with_unknown_body_defaults_to_jpeg(self):
        assert extract("data:application/octet-stream;base64,AAAA").media_type == "image/jpeg"

    def test_extra_parameters_are_ignored(self):
        img = extract(f"data:image/png;name=shot.png;base64,{PNG_B64}")
        assert img.media_type == "image/png"
        assert img.data == PNG_B64

    def test_empty_header_keeps_only_the_body(self):
        img = extract(f"data:;base64,{PNG_B64}")
        assert img == EncodedImage(media_type="image/png", data=PNG_B64)

    def test_non_base64_header_drops_the_prefix(self):
        img = extract("data:image/svg+xml,<svg></svg>")
        assert img.data == "<svg></svg>"
        assert img.media_type == "image/jpeg"

    def test_round_trip_keeps_exact_bytes(self):
        uri = f"data:image/png;base64,{PNG_B64}"
        img = extract(uri)
        assert img.to_data_uri() == uri
        assert img.to_bytes() == base64.b64decode(PNG_B64)


class TestSniffing:

    @pytest.mark.parametrize(
        "body,expected",
        [
            (JPEG_B64, "image/jpeg"),
            (PNG_B64, "image/png"),
            ("R0lGODlhAQABAAAAACw=", "image/gif"),
            ("UklGRiQAAABXRUJQVlA4", "image/webp"),
            ("AAAAHGZ0eXBhdmlm", "image/jpeg"),
        ],
    )
    def test_signature_table(self, body, expected):
        assert sniff_media_type(body) == expected
        assert extract(body).media_type == expected

    def test_bare_payload_kept_verbatim(self):
        assert extract(PNG_B64).data == PNG_B64

    def test_raw_bytes_are_encoded_then_sniffed(self):
        raw = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
        img = extract(raw)
        assert img.media_type == "image/png"
        assert img.to_bytes() == raw

    def test_deterministic(self):
        payload = f"data:image/jpg;base64,{JPEG_B64}"
        assert extract(payload) == extract(payload)


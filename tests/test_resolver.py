"""Unit tests for the temp-image resolver."""

import base64
import io
import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from PIL import Image

from vault_chat_archive.errors import ResolutionError, StoreError
from vault_chat_archive.models import Message, Role, SaveMode
from vault_chat_archive.placeholders import find_placeholders
from vault_chat_archive.resolver import TempImageResolver, decode_image_data, image_extension

FIXED = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
STAMP = "2025-01-02T03-04-05+00-00"
PNG_URI = "data:image/png;base64,iVBORw0KGgo="


def _payload(data, source, file_name="img.png", **extra):
    return json.dumps({"dataUrl": data, "source": source, "fileName": file_name, **extra})


def _message(content, temp_images):
    return Message(id="m1", role=Role.USER, content=content, temp_images=dict(temp_images))


@pytest.fixture
def resolver(store, settings):
    return TempImageResolver(store, settings, clock=lambda: FIXED)


class TestAutoMode:
    """Auto mode inlines images and never writes to the store."""

    def test_example_scenario(self):
        """Placeholder becomes an inline data URI marker."""
        msg = _message(
            "[!TempImg tok1]\n\nLook at this",
            {"tok1": '{"encodedBytes":"AAAA","source":"screenshot","fileName":"s.png"}'},
        )
        result = TempImageResolver().resolve(msg, SaveMode.AUTO)
        assert result.content == "![screenshot](data:image/png;base64,AAAA)\n\nLook at this"
        assert result.temp_images == {}
        assert result.materialized == []
        assert not result.failed

    def test_no_store_writes(self, store):
        msg = _message("[!TempImg t]", {"t": _payload(PNG_URI, "external")})
        with patch.object(store, "write_binary") as write:
            TempImageResolver(store).resolve(msg, SaveMode.AUTO)
        write.assert_not_called()

    def test_legacy_bare_payload(self):
        """Bare-string payloads resolve with the generic label."""
        msg = _message("[!Tempimg t]", {"t": PNG_URI})
        result = TempImageResolver().resolve(msg, SaveMode.AUTO)
        assert result.content == f"![image]({PNG_URI})"

    def test_message_not_mutated(self):
        msg = _message("[!TempImg t]", {"t": _payload(PNG_URI, "screenshot")})
        TempImageResolver().resolve(msg, SaveMode.AUTO)
        assert msg.content == "[!TempImg t]"
        assert "t" in msg.temp_images

    def test_message_without_images(self):
        msg = _message("just text", {})
        result = TempImageResolver().resolve(msg, SaveMode.MANUAL)
        assert result.content == "just text"


class TestManualMode:
    """Manual mode writes one file per image, foldered by source."""

    def test_screenshot_goes_to_screenshot_folder(self, resolver, store, settings, tmp_path):
        msg = _message("[!TempImg tok1]\n\nLook", {"tok1": _payload(PNG_URI, "screenshot")})
        result = resolver.resolve(msg, SaveMode.MANUAL)

        expected = f"{settings.screenshot_folder}/tok1_{STAMP}.png"
        assert [m.path for m in result.materialized] == [expected]
        assert result.content == f"![screenshot]({expected})\n\nLook"
        assert result.temp_images == {}
        assert (tmp_path / expected).read_bytes() == base64.b64decode("iVBORw0KGgo=")

    def test_external_goes_to_external_folder(self, resolver, settings):
        msg = _message("[!TempImg t]", {"t": _payload(PNG_URI, "external")})
        result = resolver.resolve(msg, SaveMode.MANUAL)
        assert result.materialized[0].path.startswith(settings.external_image_folder + "/")

    def test_generic_goes_to_conversation_images(self, resolver, settings):
        msg = _message("[!TempImg t]", {"t": _payload(PNG_URI, "image")})
        result = resolver.resolve(msg, SaveMode.MANUAL)
        assert result.materialized[0].path.startswith(settings.conversation_folder + "/images/")

    def test_vault_image_not_rewritten(self, resolver, store):
        """Vault images keep their existing path."""
        msg = _message("[!TempImg t]", {"t": _payload(PNG_URI, "vault", localPath="notes/pic.png")})
        with patch.object(store, "write_binary") as write:
            result = resolver.resolve(msg, SaveMode.MANUAL)
        write.assert_not_called()
        assert result.content == "![vault](notes/pic.png)"
        assert result.materialized == []

    def test_one_write_per_image(self, resolver, store):
        msg = _message(
            "[!TempImg a] [!TempImg b]",
            {"a": _payload(PNG_URI, "screenshot"), "b": _payload(PNG_URI, "external")},
        )
        with patch.object(store, "write_binary", wraps=store.write_binary) as write:
            result = resolver.resolve(msg, SaveMode.MANUAL)
        assert write.call_count == 2
        assert find_placeholders(result.content) == []

    def test_requires_store(self):
        msg = _message("[!TempImg t]", {"t": _payload(PNG_URI, "screenshot")})
        with pytest.raises(ResolutionError):
            TempImageResolver().resolve(msg, SaveMode.MANUAL)


class TestFailurePolicy:
    """A failed materialization leaves the message's images untouched."""

    def test_write_failure_keeps_everything(self, resolver, store):
        images = {"a": _payload(PNG_URI, "screenshot"), "b": _payload(PNG_URI, "external")}
        msg = _message("[!TempImg a]\n[!TempImg b]", images)
        with patch.object(store, "write_binary", side_effect=[None, StoreError("x.png", "disk full")]):
            result = resolver.resolve(msg, SaveMode.MANUAL)

        assert result.failed
        assert result.content == "[!TempImg a]\n[!TempImg b]"
        assert result.temp_images == images

    def test_invalid_base64_fails(self, resolver):
        msg = _message("[!TempImg t]", {"t": _payload("data:image/png;base64,@@@", "screenshot")})
        result = resolver.resolve(msg, SaveMode.MANUAL)
        assert result.failed
        assert result.content == "[!TempImg t]"

    def test_placeholder_without_payload_left_alone(self, resolver):
        msg = _message("[!TempImg missing] [!TempImg t]", {"t": _payload(PNG_URI, "screenshot")})
        result = resolver.resolve(msg, SaveMode.AUTO)
        assert find_placeholders(result.content) == ["missing"]
        assert not result.failed

    def test_earlier_writes_removed_on_failure(self, resolver, store, settings):
        """Files written before a later image fails are deleted again."""
        images = {"a": _payload(PNG_URI, "screenshot"), "b": _payload(PNG_URI, "screenshot")}
        msg = _message("[!TempImg a]\n[!TempImg b]", images)
        real_write = store.write_binary

        def fail_second(path, data):
            if "/b_" in path:
                raise StoreError(path, "disk full")
            real_write(path, data)

        with patch.object(store, "write_binary", side_effect=fail_second):
            result = resolver.resolve(msg, SaveMode.MANUAL)

        assert result.failed
        assert result.materialized == []
        assert list((store.root / settings.screenshot_folder).iterdir()) == []

    def test_retry_after_failure_writes_each_image_once(self, resolver, store, settings):
        images = {"a": _payload(PNG_URI, "screenshot"), "b": _payload(PNG_URI, "screenshot")}
        msg = _message("[!TempImg a]\n[!TempImg b]", images)
        with patch.object(store, "write_binary", side_effect=[None, StoreError("x.png", "disk full")]):
            resolver.resolve(msg, SaveMode.MANUAL)

        result = resolver.resolve(msg, SaveMode.MANUAL)
        assert not result.failed
        written = sorted(p.name for p in (store.root / settings.screenshot_folder).iterdir())
        assert written == [f"a_{STAMP}.png", f"b_{STAMP}.png"]


class TestPlaceholderClosure:
    """A successful resolution leaves no temp images behind."""

    def test_payload_without_placeholder_dropped(self, resolver):
        msg = _message("no placeholder here", {"t": '{"encodedBytes":"AAAA","source":"screenshot","fileName":"s.png"}'})
        result = resolver.resolve(msg, SaveMode.AUTO)
        assert result.content == "no placeholder here"
        assert result.temp_images == {}
        assert not result.failed

    def test_mixed_referenced_and_orphan(self, resolver):
        msg = _message(
            "[!TempImg a] look",
            {"a": _payload(PNG_URI, "screenshot"), "orphan": _payload(PNG_URI, "external")},
        )
        result = resolver.resolve(msg, SaveMode.MANUAL)
        assert find_placeholders(result.content) == []
        assert result.temp_images == {}

    def test_materialized_records_label_and_path(self, resolver, settings):
        msg = _message("[!TempImg t]", {"t": _payload(PNG_URI, "external")})
        result = resolver.resolve(msg, SaveMode.MANUAL)
        (image,) = result.materialized
        assert image.label == "external"
        assert result.content == image.markup()


class TestImageData:
    """Tests for data decoding and extension detection."""

    def test_decode_data_uri(self):
        raw, mime = decode_image_data(PNG_URI)
        assert mime == "image/png"
        assert raw.startswith(b"\x89PNG")

    def test_decode_bare_base64(self):
        raw, mime = decode_image_data("AAAA")
        assert raw == b"\x00\x00\x00"
        assert mime == ""

    def test_decode_rejects_non_base64(self):
        with pytest.raises(ValueError):
            decode_image_data("data:image/png,rawtext")

    def test_extension_from_mime(self):
        assert image_extension(b"", "image/jpeg") == "jpg"
        assert image_extension(b"", "image/webp") == "webp"

    def test_extension_sniffed_from_bytes(self):
        buf = io.BytesIO()
        Image.new("RGB", (2, 2)).save(buf, format="GIF")
        assert image_extension(buf.getvalue(), "") == "gif"

    def test_extension_fallback(self):
        assert image_extension(b"not an image", "") == "png"

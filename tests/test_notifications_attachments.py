"""Tests for uploaded document lookup."""

import os

import pytest

from hosting_notifier.notifications.attachments import AttachmentResolver
from hosting_notifier.notifications.models import AttachmentError


@pytest.fixture
def upload_dir(tmp_path):
    directory = tmp_path / "pdfs"
    directory.mkdir()
    return directory


class TestAttachmentResolver:
    def test_load_strips_entity_prefix(self, upload_dir):
        (upload_dir / "12_contract_2024.pdf").write_bytes(b"%PDF-1.4")

        attachment = AttachmentResolver(upload_dir).load(12)

        assert attachment.filename == "contract_2024.pdf"
        assert attachment.content == b"%PDF-1.4"
        assert attachment.mime_type == "application/pdf"

    def test_other_entities_ignored(self, upload_dir):
        (upload_dir / "120_other.pdf").write_bytes(b"x")
        (upload_dir / "2_other.pdf").write_bytes(b"x")

        assert AttachmentResolver(upload_dir).find_attachment(12) is None

    def test_newest_upload_wins(self, upload_dir):
        old = upload_dir / "12_old.pdf"
        new = upload_dir / "12_new.pdf"
        old.write_bytes(b"old")
        new.write_bytes(b"new")
        os.utime(old, (1_700_000_000, 1_700_000_000))
        os.utime(new, (1_710_000_000, 1_710_000_000))

        assert AttachmentResolver(upload_dir).load(12).content == b"new"

    def test_unknown_extension(self, upload_dir):
        (upload_dir / "5_notes.unknownext").write_bytes(b"data")

        assert AttachmentResolver(upload_dir).load(5).mime_type == "application/octet-stream"

    def test_missing_upload(self, upload_dir):
        with pytest.raises(AttachmentError, match="No document found"):
            AttachmentResolver(upload_dir).load(12)

    def test_missing_directory(self, tmp_path):
        resolver = AttachmentResolver(tmp_path / "absent")

        assert resolver.find_attachment(12) is None
        with pytest.raises(AttachmentError):
            resolver.load(12)

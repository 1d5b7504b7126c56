import io

import pytest

from backend.app.lpj.errors import SubmissionRejected
from backend.app.services.attachment_service import (
    AttachmentRejected,
    AttachmentStorage,
    sanitize_filename,
    unique_filename,
)


def test_sanitize_filename():
    assert sanitize_filename("Nota Belanja (1).pdf") == "Nota_Belanja__1_.pdf"
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("") == "attachment"


def test_unique_filename_keeps_sanitized_name():
    first = unique_filename("bukti transfer.png")
    second = unique_filename("bukti transfer.png")
    assert first.endswith("-bukti_transfer.png")
    assert first != second


def test_save_streams_file_to_uploads(tmp_path):
    storage = AttachmentStorage(tmp_path / "uploads", max_bytes=1024)
    ref = storage.save("nota.pdf", "application/pdf", io.BytesIO(b"%PDF-1.4 data"))

    assert ref.filename.endswith("-nota.pdf")
    assert (tmp_path / "uploads" / ref.filename).read_bytes() == b"%PDF-1.4 data"
    assert ref.path == str(tmp_path / "uploads" / ref.filename)


def test_rejects_disallowed_type(tmp_path):
    storage = AttachmentStorage(tmp_path, max_bytes=1024)
    with pytest.raises(AttachmentRejected) as excinfo:
        storage.save("script.sh", "application/x-sh", io.BytesIO(b"echo"))
    assert isinstance(excinfo.value, SubmissionRejected)
    assert excinfo.value.field == "attachment"
    assert list(tmp_path.iterdir()) == []


def test_rejects_oversized_file_and_removes_partial_write(tmp_path):
    storage = AttachmentStorage(tmp_path, max_bytes=10)
    with pytest.raises(AttachmentRejected, match="too large"):
        storage.save("foto.png", "image/png", io.BytesIO(b"x" * 11))
    assert list(tmp_path.iterdir()) == []

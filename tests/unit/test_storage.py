"""Unit tests for invoicehub/services/storage.py key handling (no S3 calls)."""

import pytest

from invoicehub.services.storage import ReceiptStorage


@pytest.fixture
def storage():
    s = ReceiptStorage()
    s.bucket = "invoicehub-receipts"
    return s


def test_build_key_scopes_by_user(storage):
    key = storage.build_key("user-1", "march/receipt.pdf")
    assert key.startswith("receipts/user-1/")
    assert key.endswith("-march_receipt.pdf")


@pytest.mark.parametrize(
    "reference,expected",
    [
        ("receipts/u/abc.pdf", "receipts/u/abc.pdf"),
        ("/receipts/u/abc.pdf", "receipts/u/abc.pdf"),
        ("https://s3.example.com/invoicehub-receipts/receipts/u/abc.pdf", "receipts/u/abc.pdf"),
        ("https://invoicehub-receipts.s3.amazonaws.com/receipts/u/abc.pdf?X-Amz-Signature=1", "receipts/u/abc.pdf"),
        ("", None),
        (None, None),
        ("https://s3.example.com/", None),
    ],
)
def test_extract_key(storage, reference, expected):
    assert storage.extract_key(reference) == expected

"""Unit tests for the X-Internal-Secret guard in invoicehub/jobs/scheduled.py."""

from unittest.mock import patch

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from invoicehub.jobs import scheduled


def _request(headers):
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/internal/jobs/mark-overdue-invoices",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    })


@pytest.mark.asyncio
async def test_matching_secret_accepted():
    with patch.object(scheduled.settings, "INTERNAL_JOB_SECRET", "s3cret"):
        assert await scheduled._require_internal_auth(
            _request({"X-Internal-Secret": "s3cret"})
        ) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"X-Internal-Secret": "nope"}])
async def test_wrong_or_missing_secret_forbidden(headers):
    with patch.object(scheduled.settings, "INTERNAL_JOB_SECRET", "s3cret"):
        with pytest.raises(HTTPException) as exc:
            await scheduled._require_internal_auth(_request(headers))
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_unconfigured_secret_outside_debug_unavailable():
    with patch.object(scheduled.settings, "INTERNAL_JOB_SECRET", None), \
            patch.object(scheduled.settings, "DEBUG", False):
        with pytest.raises(HTTPException) as exc:
            await scheduled._require_internal_auth(_request({}))
    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_unconfigured_secret_allowed_in_debug():
    with patch.object(scheduled.settings, "INTERNAL_JOB_SECRET", None), \
            patch.object(scheduled.settings, "DEBUG", True):
        assert await scheduled._require_internal_auth(_request({})) is None

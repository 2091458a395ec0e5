import base64
from datetime import datetime

import pytest

from src.attendance_engine.attendance_engine.access.model import Caller
from src.attendance_engine.attendance_engine.businesses.memory_business_repository import InMemoryBusinessRepository
from src.attendance_engine.attendance_engine.businesses.model import BusinessAnchor
from src.attendance_engine.attendance_engine.core.enums import Role
from src.attendance_engine.attendance_engine.core.exceptions import InsufficientRole, NotFound
from src.attendance_engine.attendance_engine.location.model import GeoPoint
from src.attendance_engine.attendance_engine.qr.codec import TokenCodec
from src.attendance_engine.attendance_engine.qr.image import render_qr_data_url, render_qr_png
from src.attendance_engine.attendance_engine.qr.service import QRService

NOW = datetime(2026, 3, 2, 8, 55, 0)
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def _service() -> tuple[QRService, TokenCodec]:
    codec = TokenCodec("unit-test-key")
    businesses = InMemoryBusinessRepository(
        anchors=[BusinessAnchor(business_id=1, location=GeoPoint(lat=37.4979, lon=127.0276))]
    )
    return QRService(codec, businesses), codec


@pytest.mark.parametrize("role", [Role.OWNER, Role.MANAGER])
def test_manager_or_owner_can_issue(role):
    service, codec = _service()

    issued = service.issue_qr_token(Caller(user_id=10, memberships={1: role}), 1, now=NOW)

    assert issued.business_id == 1
    assert codec.validate(issued.token, 1, now=NOW).ok is True


@pytest.mark.parametrize("memberships", [{1: Role.WORKER}, {1: Role.SEEKER}, {2: Role.OWNER}, {}])
def test_other_callers_cannot_issue(memberships):
    service, _ = _service()

    with pytest.raises(InsufficientRole) as exc:
        service.issue_qr_token(Caller(user_id=10, memberships=memberships), 1, now=NOW)
    assert exc.value.code == "INSUFFICIENT_ROLE"
    assert exc.value.http_status == 403


def test_unknown_business():
    service, _ = _service()

    with pytest.raises(NotFound):
        service.issue_qr_token(Caller(user_id=10, memberships={9: Role.OWNER}), 9, now=NOW)


def test_png_rendering():
    png = render_qr_png("payload.signature")

    assert png.startswith(PNG_MAGIC)


def test_data_url_wraps_png():
    url = render_qr_data_url("payload.signature")

    assert url.startswith("data:image/png;base64,")
    assert base64.b64decode(url.split(",", 1)[1]).startswith(PNG_MAGIC)


def test_service_renders_fresh_token_image():
    service, _ = _service()
    owner = Caller(user_id=10, memberships={1: Role.OWNER})

    issued, url = service.issue_qr_data_url(owner, 1, now=NOW)

    assert issued.business_id == 1
    assert url.startswith("data:image/png;base64,")
    assert service.issue_qr_png(owner, 1, now=NOW).startswith(PNG_MAGIC)

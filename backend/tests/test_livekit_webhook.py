import json
import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("SKIP_MIGRATIONS", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from ekkle.core.config import settings
from ekkle.core.db import Base, get_db
from ekkle.core.rate_limit import InMemoryRateLimitStore
from ekkle.crud.live_streams import create_live_stream, get_live_stream_by_room_name
from ekkle.integrations.livekit import (
    LiveKitNotConfigured,
    WebhookVerificationError,
    sign_webhook,
    verify_webhook,
)
from ekkle.main import create_app
from ekkle.models.enums import LiveStreamStatusEnum


API_KEY = "APIkey123"
API_SECRET = "livekit-secret-for-tests"
URL = "http://ekkle.com.br/api/webhooks/livekit"


@pytest.fixture
def db_session(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'webhooks.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def client(db_session, monkeypatch):
    monkeypatch.setattr(settings, "LIVEKIT_API_KEY", API_KEY)
    monkeypatch.setattr(settings, "LIVEKIT_API_SECRET", API_SECRET)
    app = create_app(rate_limit_store=InMemoryRateLimitStore())

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def _post(client, payload, *, token=None):
    body = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/webhook+json"}
    if token is None:
        token = sign_webhook(body)
    if token:
        headers["Authorization"] = token
    return client.post(URL, content=body, headers=headers)


def _stream(db, room_name="culto-domingo", status=LiveStreamStatusEnum.SCHEDULED):
    return create_live_stream(
        db,
        church_id="42",
        title="Culto de domingo",
        livekit_room_name=room_name,
        status=status,
    )


def test_egress_started_marks_stream_live(client, db_session):
    _stream(db_session)
    resp = _post(
        client,
        {
            "event": "egress_started",
            "id": "EV_1",
            "createdAt": 1700000000,
            "egressInfo": {"egressId": "EG_1", "roomName": "culto-domingo", "status": "EGRESS_ACTIVE"},
        },
    )
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "ignored": False}

    db_session.expire_all()
    stream = get_live_stream_by_room_name(db_session, "culto-domingo")
    assert stream.status == LiveStreamStatusEnum.LIVE.value
    assert stream.livekit_egress_id == "EG_1"
    assert stream.actual_start is not None


def test_room_finished_ends_live_stream(client, db_session):
    _stream(db_session, status=LiveStreamStatusEnum.LIVE)
    resp = _post(client, {"event": "room_finished", "room": {"name": "culto-domingo", "sid": "RM_1"}})
    assert resp.status_code == 200

    db_session.expire_all()
    stream = get_live_stream_by_room_name(db_session, "culto-domingo")
    assert stream.status == LiveStreamStatusEnum.ENDED.value
    assert stream.actual_end is not None
    assert stream.livekit_egress_id is None


def test_egress_ended_ends_live_stream(client, db_session):
    _stream(db_session, status=LiveStreamStatusEnum.LIVE)
    resp = _post(
        client,
        {"event": "egress_ended", "egressInfo": {"egressId": "EG_1", "roomName": "culto-domingo"}},
    )
    assert resp.status_code == 200
    db_session.expire_all()
    assert get_live_stream_by_room_name(db_session, "culto-domingo").status == LiveStreamStatusEnum.ENDED.value


def test_room_finished_leaves_scheduled_stream_alone(client, db_session):
    _stream(db_session)
    resp = _post(client, {"event": "room_finished", "room": {"name": "culto-domingo"}})
    assert resp.status_code == 200
    db_session.expire_all()
    stream = get_live_stream_by_room_name(db_session, "culto-domingo")
    assert stream.status == LiveStreamStatusEnum.SCHEDULED.value
    assert stream.actual_end is None


def test_participant_events_are_acknowledged(client):
    resp = _post(
        client,
        {"event": "participant_joined", "room": {"name": "r"}, "participant": {"identity": "membro-1"}},
    )
    assert resp.status_code == 200
    assert resp.json()["ignored"] is False


def test_unknown_event_is_acknowledged_and_ignored(client):
    resp = _post(client, {"event": "track_published", "room": {"name": "r"}})
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "ignored": True}


def test_known_event_with_bad_shape_is_rejected(client):
    resp = _post(client, {"event": "egress_started", "egressInfo": {"roomName": "r"}})
    assert resp.status_code == 400


def test_missing_authorization_header(client):
    resp = _post(client, {"event": "room_started", "room": {"name": "r"}}, token="")
    assert resp.status_code == 401


def test_tampered_body_is_rejected(client):
    original = json.dumps({"event": "room_finished", "room": {"name": "a"}}).encode("utf-8")
    token = sign_webhook(original)
    resp = client.post(
        URL,
        content=json.dumps({"event": "room_finished", "room": {"name": "b"}}).encode("utf-8"),
        headers={"Authorization": token},
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid signature"


def test_token_signed_with_other_secret_is_rejected(client):
    payload = {"event": "room_started", "room": {"name": "r"}}
    body = json.dumps(payload).encode("utf-8")
    token = sign_webhook(body, api_secret="someone-else")
    resp = client.post(URL, content=body, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_webhook_not_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "LIVEKIT_API_SECRET", None)
    resp = _post(client, {"event": "room_started", "room": {"name": "r"}}, token="anything")
    assert resp.status_code == 400


def test_verify_webhook_round_trip_claims():
    body = b'{"event":"room_started"}'
    token = sign_webhook(body, api_key=API_KEY, api_secret=API_SECRET)
    claims = verify_webhook(body, f"Bearer {token}", api_key=API_KEY, api_secret=API_SECRET)
    assert claims["iss"] == API_KEY


def test_verify_webhook_wrong_issuer():
    body = b"{}"
    token = sign_webhook(body, api_key="other", api_secret=API_SECRET)
    with pytest.raises(WebhookVerificationError):
        verify_webhook(body, token, api_key=API_KEY, api_secret=API_SECRET)


def test_verify_webhook_requires_credentials(monkeypatch):
    monkeypatch.setattr(settings, "LIVEKIT_API_KEY", None)
    with pytest.raises(LiveKitNotConfigured):
        verify_webhook(b"{}", "token", api_secret=API_SECRET)

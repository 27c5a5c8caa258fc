import io
import json
from datetime import date, datetime
from http.client import RemoteDisconnected
from urllib.error import URLError

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

import telegram_channel
from config import Settings
from database import Base
from ledger import SqlLedgerStore
from models import Notification, NotificationKind
from notifications import (
    NotificationDecisionEngine,
    NotificationRequest,
    NotificationSink,
    SinkError,
)
from schemas import CategoryIn, CategoryLimitIn, TransactionIn
from services import CategoryLimitService, CategoryService, TransactionService
from telegram_channel import TelegramChannel, TelegramError


def _settings(token=None, chat_id=None) -> Settings:
    return Settings(
        database_url="sqlite:///:memory:",
        timezone="UTC",
        telegram_bot_token=token,
        telegram_chat_id=chat_id,
        telegram_timeout_secs=5.0,
        reminder_hour=20,
        reminder_minute=0,
        limit_check_minutes=60,
        scheduler_enabled=False,
    )


class FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class RecordingChannel:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[str] = []
        self.fail = fail

    def send(self, text: str) -> int:
        if self.fail:
            raise TelegramError("chat not found")
        self.sent.append(text)
        return len(self.sent)


REQUEST = NotificationRequest(
    kind=NotificationKind.limit_warning,
    title="Limit warning",
    message="Category 'Food' has reached 85% of its limit (850.00/1000.00)",
    category_id=1,
)


def test_channel_disabled_without_token_or_chat() -> None:
    assert TelegramChannel.from_settings(_settings()) is None
    assert TelegramChannel.from_settings(_settings(token="abc")) is None
    channel = TelegramChannel.from_settings(_settings(token="abc", chat_id="42"))
    assert channel == TelegramChannel(token="abc", chat_id="42", timeout=5.0)


def test_channel_posts_send_message(monkeypatch) -> None:
    captured = {}

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["method"] = req.get_method()
        captured["body"] = json.loads(req.data.decode("utf-8"))
        captured["timeout"] = timeout
        return FakeResponse(b'{"ok": true, "result": {"message_id": 17}}')

    monkeypatch.setattr(telegram_channel, "urlopen", fake_urlopen)

    message_id = TelegramChannel(token="abc", chat_id="42", timeout=3).send("hi")

    assert message_id == 17
    assert captured == {
        "url": "https://api.telegram.org/botabc/sendMessage",
        "method": "POST",
        "body": {"chat_id": "42", "text": "hi"},
        "timeout": 3,
    }


def test_channel_raises_on_rejection_and_transport_errors(monkeypatch) -> None:
    monkeypatch.setattr(
        telegram_channel,
        "urlopen",
        lambda req, timeout: FakeResponse(
            b'{"ok": false, "description": "Bad Request: chat not found"}'
        ),
    )
    with pytest.raises(TelegramError, match="chat not found"):
        TelegramChannel(token="abc", chat_id="42").send("hi")

    def offline(req, timeout):
        raise URLError("offline")

    monkeypatch.setattr(telegram_channel, "urlopen", offline)
    with pytest.raises(TelegramError):
        TelegramChannel(token="abc", chat_id="42").send("hi")


def test_sink_persists_then_delivers() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    channel = RecordingChannel()

    with Session(engine) as session:
        notification = NotificationSink(session, channel).emit(REQUEST)

        assert notification.id is not None
        assert notification.is_read is False
        assert notification.kind == NotificationKind.limit_warning
        assert channel.sent == [f"{REQUEST.title}\n\n{REQUEST.message}"]


def test_sink_keeps_record_when_delivery_fails() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(SinkError):
            NotificationSink(session, RecordingChannel(fail=True)).emit(REQUEST)

        stored = session.scalars(select(Notification)).all()
        assert [n.title for n in stored] == ["Limit warning"]


@pytest.mark.parametrize(
    "failure",
    [
        ConnectionResetError("peer reset"),
        RemoteDisconnected("closed"),
        UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"),
    ],
)
def test_channel_wraps_other_transport_failures(monkeypatch, failure) -> None:
    def broken(req, timeout):
        raise failure

    monkeypatch.setattr(telegram_channel, "urlopen", broken)
    with pytest.raises(TelegramError):
        TelegramChannel(token="abc", chat_id="42").send("hi")


def test_channel_rejects_non_object_reply(monkeypatch) -> None:
    monkeypatch.setattr(
        telegram_channel, "urlopen", lambda req, timeout: FakeResponse(b"[1, 2]")
    )
    with pytest.raises(TelegramError, match="Unexpected"):
        TelegramChannel(token="abc", chat_id="42").send("hi")


def test_limit_check_continues_when_connection_resets(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    def reset(req, timeout):
        raise ConnectionResetError("peer reset")

    monkeypatch.setattr(telegram_channel, "urlopen", reset)

    with Session(engine) as session:
        for name in ("Food", "Taxi"):
            category = CategoryService(session).create(CategoryIn(name=name))
            CategoryLimitService(session).create(
                CategoryLimitIn(
                    category_id=category.id, limit_cents=1_000, month=3, year=2025
                )
            )
            TransactionService(session).create(
                TransactionIn(
                    category_id=category.id, amount_cents=900, date=date(2025, 3, 5)
                )
            )

        sink = NotificationSink(session, TelegramChannel(token="abc", chat_id="42"))
        engine_ = NotificationDecisionEngine(SqlLedgerStore(session), sink)
        requests = engine_.check_limit_warnings(datetime(2025, 3, 20, 12, 0))

        assert len(requests) == 2
        stored = session.scalars(select(Notification)).all()
        assert sorted(n.kind for n in stored) == [NotificationKind.limit_warning] * 2

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from budgeting import (
    Aggregator,
    LimitState,
    classify,
    group_limits,
    reaches_warning_threshold,
    select_limit,
)
from config import get_settings
from ledger import SqlLedgerStore, StoreError
from models import Notification, NotificationKind
from periods import Period
from telegram_channel import TelegramChannel, TelegramError


logger = logging.getLogger(__name__)

DAILY_REMINDER_TITLE = "Daily Reminder"
INCOME_REMINDER_TITLE = "Planned income missing"
LIMIT_TITLES = {
    NotificationKind.limit_warning: "Limit warning",
    NotificationKind.limit_exceeded: "Limit exceeded",
}

REMINDER_EMOJI = ("😴", "🤔", "💭", "📝", "💰", "⏰", "📱", "🎯")
REMINDER_MESSAGES = (
    "Reminder! You haven't added a single transaction today. "
    "Don't forget to record your expenses.",
    "Hey! Don't forget about expense tracking. "
    "Nothing has been logged today yet.",
    "Financial discipline starts with daily tracking. "
    "Add today's expenses while you remember them.",
    "Money likes to be counted. Don't forget to log today's spending.",
    "Tracking expenses is the basis of financial well-being. "
    "Add today's transactions.",
    "Small purchases add up to large sums. "
    "Don't skip a single one today.",
)


class SinkError(RuntimeError):
    pass


@dataclass(frozen=True)
class NotificationRequest:
    kind: NotificationKind
    title: str
    message: str
    period: Optional[Period] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    percentage: Optional[int] = None


def format_amount(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"


def pick_reminder_message(now: datetime) -> str:
    ts = int(now.timestamp())
    emoji = REMINDER_EMOJI[ts % len(REMINDER_EMOJI)]
    message = REMINDER_MESSAGES[ts % len(REMINDER_MESSAGES)]
    return f"{emoji} {message}"


def limit_message(
    category_name: str, percentage: int, spent_cents: int, limit_cents: int
) -> str:
    return (
        f"Category '{category_name}' has reached {percentage}% of its limit "
        f"({format_amount(spent_cents)}/{format_amount(limit_cents)})"
    )


class NotificationSink:
    """Persists notifications and pushes them to the delivery channel.

    The row is committed before delivery and stays even when delivery
    fails, so a retry may deliver the same notification twice.
    """

    def __init__(self, session: Session, channel: Optional[TelegramChannel] = None) -> None:
        self.session = session
        self.channel = channel

    def emit(self, request: NotificationRequest) -> Notification:
        notification = Notification(
            kind=request.kind,
            title=request.title,
            message=request.message,
            is_read=False,
        )
        try:
            self.session.add(notification)
            self.session.commit()
            self.session.refresh(notification)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise SinkError(f"Failed to store {request.kind.value} notification") from exc

        if self.channel is not None:
            try:
                self.channel.send(f"{request.title}\n\n{request.message}")
            except TelegramError as exc:
                raise SinkError(
                    f"Stored notification {notification.id} but delivery failed"
                ) from exc
        return notification


class NotificationDecisionEngine:
    def __init__(
        self,
        store: SqlLedgerStore,
        sink: Optional[NotificationSink] = None,
        aggregator: Optional[Aggregator] = None,
    ) -> None:
        self.store = store
        self.sink = sink
        self.aggregator = aggregator or Aggregator(store)

    def _emit_all(self, requests: list[NotificationRequest]) -> None:
        if self.sink is None:
            return
        for request in requests:
            try:
                self.sink.emit(request)
            except SinkError as exc:
                logger.error(
                    f"notification_emit_failed: kind={request.kind.value} "
                    f"category_id={request.category_id} error={exc}"
                )

    def check_limit_warnings(self, now: datetime) -> list[NotificationRequest]:
        period = Period.containing(now.date())
        limits = group_limits(self.store.list_limits(period.year, period.month))
        names = {category.id: category.name for category in self.store.list_categories()}

        requests: list[NotificationRequest] = []
        for category_id, rows in limits.items():
            selected = select_limit(rows)
            if selected is None:
                continue
            try:
                spent = self.aggregator.sum_for_category_period(
                    category_id, period.year, period.month
                )
            except StoreError as exc:
                logger.warning(
                    f"limit_check_skipped: category_id={category_id} "
                    f"period={period.year}-{period.month:02d} error={exc}"
                )
                continue
            if not reaches_warning_threshold(spent, selected.limit_cents):
                continue

            status = classify(spent, selected.limit_cents)
            if status.state == LimitState.exceeded:
                kind = NotificationKind.limit_exceeded
            else:
                kind = NotificationKind.limit_warning
            name = names.get(category_id, f"#{category_id}")
            requests.append(
                NotificationRequest(
                    kind=kind,
                    title=LIMIT_TITLES[kind],
                    message=limit_message(
                        name, status.percentage, spent, selected.limit_cents
                    ),
                    period=period,
                    category_id=category_id,
                    category_name=name,
                    percentage=status.percentage,
                )
            )

        logger.info(
            f"limit_check: period={period.year}-{period.month:02d} "
            f"limited_categories={len(limits)} notifications={len(requests)}"
        )
        self._emit_all(requests)
        return requests

    def check_daily_reminder(self, now: datetime) -> list[NotificationRequest]:
        today = now.date()
        count = self.store.count_transactions_on_date(today)
        logger.info(f"daily_reminder_check: date={today} transactions={count}")
        if count:
            return []
        requests = [
            NotificationRequest(
                kind=NotificationKind.daily_reminder,
                title=DAILY_REMINDER_TITLE,
                message=pick_reminder_message(now),
                period=Period.containing(today),
            )
        ]
        self._emit_all(requests)
        return requests

    def check_income_reminder(self, now: datetime) -> list[NotificationRequest]:
        period = Period.containing(now.date())
        if self.store.count_planned_income(period.year, period.month):
            return []

        previous = period.previous()
        message = f"No planned income has been entered for {period.label}."
        if self.store.count_planned_income(previous.year, previous.month):
            previous_total = self.store.sum_planned_income(previous.year, previous.month)
            message += (
                f" {previous.label} had {format_amount(previous_total)} planned; "
                "copy it forward and adjust if needed."
            )
        logger.info(f"income_reminder_check: period={period.year}-{period.month:02d}")
        requests = [
            NotificationRequest(
                kind=NotificationKind.income_reminder,
                title=INCOME_REMINDER_TITLE,
                message=message,
                period=period,
            )
        ]
        self._emit_all(requests)
        return requests


def build_engine(session: Session) -> NotificationDecisionEngine:
    channel = TelegramChannel.from_settings(get_settings())
    store = SqlLedgerStore(session)
    return NotificationDecisionEngine(store, NotificationSink(session, channel))

from __future__ import annotations

import json
from dataclasses import dataclass
from http.client import HTTPException
from typing import Optional
from urllib.request import Request, urlopen

from config import Settings


TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramError(RuntimeError):
    pass


@dataclass(frozen=True)
class TelegramChannel:
    token: str
    chat_id: str
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["TelegramChannel"]:
        if not settings.telegram_bot_token or not settings.telegram_chat_id:
            return None
        return cls(
            token=settings.telegram_bot_token,
            chat_id=settings.telegram_chat_id,
            timeout=settings.telegram_timeout_secs,
        )

    def send(self, text: str) -> int:
        url = f"{TELEGRAM_API_URL}/bot{self.token}/sendMessage"
        body = json.dumps({"chat_id": self.chat_id, "text": text}).encode("utf-8")
        req = Request(
            url,
            data=body,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            method="POST",
        )
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except (OSError, HTTPException, ValueError) as exc:
            raise TelegramError(f"Failed to send message to chat {self.chat_id}") from exc

        if not isinstance(payload, dict):
            raise TelegramError("Unexpected Telegram response")
        if not payload.get("ok"):
            description = payload.get("description", "unknown error")
            raise TelegramError(f"Telegram rejected message: {description}")
        try:
            return int(payload["result"]["message_id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TelegramError("Unexpected Telegram response") from exc

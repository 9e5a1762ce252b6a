"""
Delivers change notifications through the Telegram Bot API.
"""
import asyncio
import logging
import re
from typing import Iterable, List, Optional, Sequence, Tuple

import requests

from schedwatch.config import BOT_TOKEN, REQUEST_TIMEOUT_SECONDS
from schedwatch.services.range_differ import RangeUpdate
from schedwatch.services.tree import File, Node, Range, User

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/{method}"

Button = Tuple[str, str]  # label, url

_MARKDOWN_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown(text: str) -> str:
    """Escapes MarkdownV2 control characters."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def format_node_event(verb: str, node: Node) -> str:
    return f"*{verb} {node.kind.upper()}*\n{escape_markdown(node.display_path())}"


def format_modified_file(file: File) -> str:
    return f"*Modified FILE*\n{escape_markdown(file.display_path())}"


def format_range_update(range_node: Range, file: File, update: RangeUpdate) -> str:
    header = f'*Range "{escape_markdown(range_node.alias)}" ({escape_markdown(range_node.name)})*'
    body = (
        f"{file.display_path()}\n"
        f"Modified on sheets: {', '.join(update.modified) or '-'}\n"
        f"Added to sheets: {', '.join(update.added) or '-'}"
    )
    return f"{header}\n{escape_markdown(body)}"


class Notifier:
    """Sends messages one recipient at a time; a failed recipient never stops the batch."""

    def __init__(self, token: str = BOT_TOKEN, timeout: int = REQUEST_TIMEOUT_SECONDS):
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()

    def send_message(self, chat_id: int, text: str, buttons: Optional[Sequence[Button]] = None):
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "MarkdownV2"}
        if buttons:
            payload["reply_markup"] = {
                "inline_keyboard": [[{"text": label, "url": url}] for label, url in buttons]
            }
        response = self.session.post(
            TELEGRAM_API_URL.format(token=self.token, method="sendMessage"),
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()
        body = response.json()
        if not body.get("ok"):
            raise RuntimeError(f"Telegram rejected message to {chat_id}: {body.get('description')}")

    async def broadcast(self, users: Iterable[User], text: str,
                        buttons: Optional[Sequence[Button]] = None) -> List[int]:
        """Returns the chat ids delivery failed for."""
        failed = []
        for user in sorted(users, key=lambda u: u.chat_id):
            try:
                await asyncio.to_thread(self.send_message, user.chat_id, text, buttons)
            except (requests.exceptions.RequestException, RuntimeError, ValueError) as e:
                logging.error(f"Failed to notify {user.chat_id}: {e}")
                failed.append(user.chat_id)
        return failed

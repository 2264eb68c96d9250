"""Telegram Bot API channel for outbound notifications."""
import logging
import time
from typing import List

import requests

logger = logging.getLogger(__name__)


class NotificationDispatchError(RuntimeError):
    """Raised when a message could not be delivered."""


class TelegramChannel:
    """Sends text messages to one preconfigured Telegram chat."""

    API_URL = "https://api.telegram.org/bot{token}/sendMessage"
    MAX_MESSAGE_LENGTH = 4096

    def __init__(
        self,
        token: str,
        chat_id: str,
        timeout: int = 30,
        parse_mode: str = 'Markdown',
        max_retries: int = 3,
        base_delay: float = 1,
        dry_run: bool = False
    ):
        """
        Initialize the Telegram channel.

        Args:
            token: Bot API token
            chat_id: Destination chat identifier
            timeout: HTTP request timeout in seconds (default: 30)
            parse_mode: Telegram parse mode for formatting markers
            max_retries: Attempts per message chunk (default: 3)
            base_delay: First retry delay in seconds, doubled per attempt
            dry_run: Log messages instead of sending them
        """
        self.token = token
        self.chat_id = chat_id
        self.timeout = timeout
        self.parse_mode = parse_mode
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.dry_run = dry_run

    def send(self, text: str) -> None:
        """
        Send a message, splitting it if it exceeds the Telegram limit.

        Args:
            text: Message text

        Raises:
            NotificationDispatchError: If any chunk fails after all retries
        """
        if self.dry_run:
            logger.info(f"[DRY-RUN] Telegram message:\n{text}")
            return

        if not self.token or not self.chat_id:
            raise NotificationDispatchError('Telegram token or chat id is not configured')

        for chunk in self._split(text):
            self._post(chunk)

    def _post(self, text: str) -> None:
        url = self.API_URL.format(token=self.token)
        payload = {
            'chat_id': self.chat_id,
            'text': text,
            'parse_mode': self.parse_mode,
            'disable_web_page_preview': True
        }

        for attempt in range(self.max_retries):
            try:
                response = requests.post(url, json=payload, timeout=self.timeout)
                response.raise_for_status()
                body = response.json()
                if not body.get('ok', False):
                    raise NotificationDispatchError(
                        f"Telegram API rejected message: {body.get('description')}"
                    )
                return

            except (requests.RequestException, ValueError) as e:
                if attempt < self.max_retries - 1:
                    # Calculate exponential backoff delay
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Telegram send failed (attempt {attempt + 1}/{self.max_retries}): "
                        f"{e}. Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} Telegram send attempts failed. "
                        f"Last error: {e}"
                    )
                    raise NotificationDispatchError(f"Telegram send failed: {e}") from e

    def _split(self, text: str) -> List[str]:
        """Split on line boundaries into chunks within the message limit."""
        if len(text) <= self.MAX_MESSAGE_LENGTH:
            return [text]

        chunks = []
        current = ''
        for line in text.split('\n'):
            while len(line) > self.MAX_MESSAGE_LENGTH:
                if current:
                    chunks.append(current)
                    current = ''
                chunks.append(line[:self.MAX_MESSAGE_LENGTH])
                line = line[self.MAX_MESSAGE_LENGTH:]
            candidate = f"{current}\n{line}" if current else line
            if len(candidate) > self.MAX_MESSAGE_LENGTH:
                chunks.append(current)
                current = line
            else:
                current = candidate
        if current:
            chunks.append(current)
        return chunks

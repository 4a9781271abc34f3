"""Discord webhook integrations used for log shipping and job alerts."""

from __future__ import annotations

import asyncio
import hashlib
import time
from typing import List, Optional, Sequence

import httpx

from simnations.utils.logger.config import LogEvent, LogLevel
from simnations.utils.logger.handlers.base import BaseLogHandler

DISCORD_MESSAGE_LIMIT = 2000

SEVERITY_PREFIX = {
    LogLevel.CRITICAL: "🔥",
    LogLevel.ERROR: "❌",
    LogLevel.WARNING: "⚠️",
    LogLevel.INFO: "ℹ️",
    LogLevel.DEBUG: "🐞",
}


def fence_code(text: str, lang: str = "") -> str:
    """Wrap ``text`` in a fenced code block while escaping existing fences."""

    safe = text.replace("```", "```\u200b")
    return f"```{lang}\n{safe}\n```"


def pack_lines(lines: Sequence[str], limit: int, max_lines: int) -> List[str]:
    """Group ``lines`` into messages of at most ``limit`` characters.

    Lines longer than ``limit`` are split; at most ``max_lines`` lines end up
    in one message.

    :param lines: Log lines to pack.
    :param limit: Maximum characters per message.
    :param max_lines: Maximum lines per message.
    :return: Messages ready for delivery.
    """
    messages: List[str] = []
    chunk: List[str] = []
    total = 0
    for line in lines:
        pieces = [line[i : i + limit] for i in range(0, len(line), limit)] or [""]
        for piece in pieces:
            if chunk and (len(chunk) >= max_lines or total + len(piece) + 1 > limit):
                messages.append("\n".join(chunk))
                chunk, total = [], 0
            chunk.append(piece)
            total += len(piece) + 1
    if chunk:
        messages.append("\n".join(chunk))
    return messages


class DiscordTransport:
    """Thin async wrapper around a Discord webhook endpoint."""

    def __init__(self, webhook_url: str, *, username: str | None = None, http_timeout: float = 5.0):
        self.url = webhook_url
        self.username = username
        self.http_timeout = http_timeout
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.http_timeout)

    async def shutdown(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, content: str) -> None:
        """POST one message to the webhook, backing off on 429 and 5xx.

        :param content: Message body to deliver.
        """
        if self._client is None:
            raise RuntimeError("DiscordTransport.send() called before start()")
        payload = {"content": content, "allowed_mentions": {"parse": []}}
        if self.username:
            payload["username"] = self.username

        try:
            r = await self._client.post(self.url, json=payload)
            if r.status_code == 429:
                try:
                    retry = float(r.json().get("retry_after", 1))
                except ValueError:
                    retry = float(r.headers.get("Retry-After", "1"))
                await asyncio.sleep(max(0.0, retry))
            elif r.status_code >= 500:
                await asyncio.sleep(1.0)
        except httpx.RequestError:
            # Logging from the transport would feed back into this handler.
            pass


class _DiscordQueueWorker:
    """Background task delivering queued batches of lines to Discord."""

    def __init__(
        self,
        transport: DiscordTransport,
        *,
        queue_size: int = 1000,
        max_lines_per_post: int = 50,
        max_chars_per_post: int = 1900,
        format_as_code: bool = True,
        code_lang: str = "",
    ):
        self.transport = transport
        self.q: asyncio.Queue[List[str]] = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task] = None
        self.max_lines = max_lines_per_post
        self.max_chars = min(max_chars_per_post, DISCORD_MESSAGE_LIMIT)
        self.format_as_code = format_as_code
        self.code_lang = code_lang

    async def start(self) -> None:
        await self.transport.start()
        if self._task is None:
            self._task = asyncio.create_task(self._runner(), name=self.__class__.__name__)

    async def flush(self, timeout: float | None = None) -> None:
        if timeout is None:
            await self.q.join()
        else:
            await asyncio.wait_for(self.q.join(), timeout=timeout)

    async def shutdown(self, timeout: float | None = 5.0) -> None:
        """Drain pending messages, then stop the worker and the transport."""
        try:
            await self.flush(timeout)
        except asyncio.TimeoutError:
            pass

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self.transport.shutdown()

    def enqueue_lines(self, lines: Sequence[str]) -> None:
        """Queue lines for delivery; drops the batch when the queue is full."""
        if not lines:
            return
        try:
            self.q.put_nowait(list(lines))
        except asyncio.QueueFull:
            pass

    async def _runner(self) -> None:
        overhead = (8 + len(self.code_lang)) if self.format_as_code else 0
        limit = max(1, self.max_chars - overhead)
        while True:
            lines = await self.q.get()
            try:
                for message in pack_lines(lines, limit, self.max_lines):
                    if self.format_as_code:
                        message = fence_code(message, self.code_lang)
                    await self.transport.send(message)
            finally:
                self.q.task_done()


class DiscordHandler(BaseLogHandler, _DiscordQueueWorker):
    """Log handler that ships error-level log events to Discord."""

    def __init__(self, webhook_url: str, *, min_level: LogLevel = LogLevel.ERROR, username: str | None = None):
        BaseLogHandler.__init__(self)
        _DiscordQueueWorker.__init__(self, DiscordTransport(webhook_url, username=username))
        self.min_level = min_level

    async def start(self) -> None:
        await _DiscordQueueWorker.start(self)

    async def shutdown(self) -> None:
        await _DiscordQueueWorker.shutdown(self)

    async def push(self, records: list[LogEvent]) -> None:
        self.enqueue_lines([ev.text for ev in records if ev.level.value >= self.min_level.value])


class DiscordAlerter(_DiscordQueueWorker):
    """Alert helper with per-key cooldown and duplicate suppression."""

    def __init__(
        self,
        webhook_url: str,
        *,
        username: str | None = None,
        default_cooldown_sec: int = 60,
        enable_dedupe: bool = True,
        format_as_code: bool = True,
        code_lang: str = "text",
    ):
        super().__init__(
            DiscordTransport(webhook_url, username=username),
            format_as_code=format_as_code,
            code_lang=code_lang,
        )
        self.default_cooldown = default_cooldown_sec
        self.enable_dedupe = enable_dedupe
        self._last_sent_at: dict[str, float] = {}
        self._last_hash: dict[str, str] = {}

    async def trigger(
        self,
        key: str,
        message: str,
        *,
        severity: LogLevel = LogLevel.WARNING,
        cooldown_sec: int | None = None,
    ) -> bool:
        """Queue an alert unless ``key`` is cooling down with the same text.

        :param key: Alert identity used for cooldown and dedupe.
        :param message: Alert body.
        :param severity: Level selecting the emoji prefix.
        :param cooldown_sec: Override of the default cooldown window.
        :return: Whether the alert was queued.
        """
        now = time.time()
        cd = self.default_cooldown if cooldown_sec is None else cooldown_sec
        digest = hashlib.sha256(message.encode("utf-8")).hexdigest()

        if cd > 0 and now - self._last_sent_at.get(key, 0.0) < cd:
            if not self.enable_dedupe or self._last_hash.get(key) == digest:
                return False
        self._last_sent_at[key] = now
        self._last_hash[key] = digest

        prefix = SEVERITY_PREFIX.get(severity, "")
        self.enqueue_lines([f"{prefix} {message}" if prefix else message])
        return True

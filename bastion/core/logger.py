"""
Bastion - Logger Module
=======================

Tree-style logging with Eastern timestamps, dated log folders and
webhook alerts for errors.

DESIGN:
    One protection verdict is one tree: the title names the outcome and
    the branches carry guild, actor, module and status, so a whole
    audit event reads as a single block in the file.

    Raids produce bursts of identical failures (every revert hitting
    the same missing permission). Webhook alerts are throttled per
    title so a burst sends one alert, not hundreds; the files still
    get every line.
"""

import asyncio
import os
import shutil
import time
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import aiohttp
from zoneinfo import ZoneInfo


NY_TZ = ZoneInfo("America/New_York")

LOG_RETENTION_DAYS = 7
WEBHOOK_COOLDOWN_SECONDS = 60
WEBHOOK_TIMEOUT_SECONDS = 10

Details = List[Tuple[str, str]]


def _branches(items: Details) -> List[str]:
    """Render (key, value) pairs as tree branches."""
    last = len(items) - 1
    return [f"  {'└─' if i == last else '├─'} {key}: {value}" for i, (key, value) in enumerate(items)]


class TreeLogger:
    """
    Console and file logger.

    Files are only written outside tests (TESTING unset). LOG_DIR moves
    the log root, which defaults to ./logs.

    Attributes:
        run_id: Short id printed in the session header and webhook footer.
    """

    def __init__(self) -> None:
        self.run_id: str = uuid.uuid4().hex[:8]
        self._webhook_url: Optional[str] = None
        self._last_alert: Dict[str, float] = {}

        self._log_file: Optional[Path] = None
        self._error_file: Optional[Path] = None
        if not os.getenv("TESTING"):
            self._open_files(Path(os.getenv("LOG_DIR", "logs")))

    def set_webhook(self, url: Optional[str]) -> None:
        self._webhook_url = url

    # =========================================================================
    # Files
    # =========================================================================

    def _open_files(self, root: Path) -> None:
        today = datetime.now(NY_TZ).date()
        folder = root / today.isoformat()
        folder.mkdir(parents=True, exist_ok=True)

        self._log_file = folder / f"Bastion-{today.isoformat()}.log"
        self._error_file = folder / f"Bastion-Errors-{today.isoformat()}.log"
        self._prune(root, today - timedelta(days=LOG_RETENTION_DAYS))

        self._append(self._log_file, [
            "",
            "=" * 60,
            f"SESSION {self.run_id} {datetime.now(NY_TZ).strftime('%Y-%m-%d %I:%M:%S %p %Z')}",
            "=" * 60,
        ])

    @staticmethod
    def _prune(root: Path, cutoff) -> None:
        """Delete dated folders older than cutoff; other folders are left alone."""
        for folder in root.iterdir():
            try:
                folder_date = datetime.strptime(folder.name, "%Y-%m-%d").date()
            except ValueError:
                continue
            if folder.is_dir() and folder_date < cutoff:
                shutil.rmtree(folder, ignore_errors=True)

    @staticmethod
    def _append(path: Optional[Path], lines: List[str]) -> None:
        if path is None:
            return
        with open(path, "a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    # =========================================================================
    # Output
    # =========================================================================

    def _emit(self, emoji: str, title: str, details: Optional[Details] = None, is_error: bool = False,
              spaced: bool = False) -> None:
        stamp = datetime.now(NY_TZ).strftime("[%I:%M:%S %p %Z]")
        lines = [f"{stamp} {emoji} {title}"] + _branches(details or [])

        print("\n".join(lines))
        file_lines = [""] + lines + [""] if spaced else lines
        self._append(self._log_file, file_lines)
        if is_error:
            self._append(self._error_file, file_lines)

    def tree(self, title: str, items: Details, emoji: str = "📦") -> None:
        """
        Log a titled block of key/value branches.

        Example output:
            [02:30:45 PM EST] 🛡️ Channel Deleted
              ├─ Guild: Test Server (1234)
              ├─ Actor: raider (5678)
              └─ Status: 🚨 Blocked (Recorded 1/3)
        """
        self._emit(emoji, title, items, spaced=True)

    def debug(self, msg: str, details: Optional[Details] = None) -> None:
        """Only printed when DEBUG is set."""
        if os.getenv("DEBUG"):
            self._emit("🔍", msg, details)

    def info(self, msg: str, details: Optional[Details] = None) -> None:
        self._emit("ℹ️", msg, details)

    def warning(self, msg: str, details: Optional[Details] = None) -> None:
        self._emit("⚠️", msg, details)

    def error(self, msg: str, details: Optional[Details] = None) -> None:
        """Write to both files and alert the webhook when one is set."""
        self._emit("❌", msg, details, is_error=True, spaced=bool(details))
        if details:
            self._schedule_alert(msg, details)

    def critical(self, msg: str) -> None:
        self._emit("🚨", msg, is_error=True)

    # =========================================================================
    # Webhook Alerts
    # =========================================================================

    def _schedule_alert(self, title: str, details: Details) -> None:
        if not self._webhook_url:
            return

        now = time.monotonic()
        if now - self._last_alert.get(title, float("-inf")) < WEBHOOK_COOLDOWN_SECONDS:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # Startup, before the event loop runs
        self._last_alert[title] = now
        loop.create_task(self._send_alert(title, details))

    async def _send_alert(self, title: str, details: Details) -> None:
        payload = {
            "embeds": [{
                "title": f"❌ {title}",
                "description": "\n".join(f"**{key}:** {value}" for key, value in details)[:4000],
                "color": 0xE74C3C,
                "timestamp": datetime.now(NY_TZ).isoformat(),
                "footer": {"text": f"Bastion · Run {self.run_id}"},
            }]
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self._webhook_url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=WEBHOOK_TIMEOUT_SECONDS),
                ) as resp:
                    if resp.status >= 300:
                        self._emit("⚠️", "Error Webhook Rejected", [("Status", str(resp.status))])
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._emit("⚠️", "Error Webhook Failed", [("Error", str(e)[:100] or type(e).__name__)])


logger = TreeLogger()
"""Global logger instance shared by every module."""


__all__ = [
    "logger",
    "TreeLogger",
    "NY_TZ",
]

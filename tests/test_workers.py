"""
Bastion - Background Worker Tests
=================================

Expiry workers and the periodic loop they share.
"""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from bastion.services.expiry import JailScheduler, LoggingCleanupScheduler, TempBanScheduler
from bastion.services.jail import JailService
from bastion.services.scheduler import PeriodicWorker

from conftest import GUILD_ID, forbidden, not_found


@pytest.fixture
def guild_online(mock_bot, mock_guild):
    mock_bot.get_guild.side_effect = {GUILD_ID: mock_guild}.get
    return mock_guild


# =============================================================================
# Temp Bans
# =============================================================================

class TestTempBanScheduler:
    """Tests for temp ban expiry."""

    @pytest.fixture
    def scheduler(self, mock_bot):
        return TempBanScheduler(mock_bot, interval=1)

    def expired_record(self, db, user_id=42):
        db.add_temp_ban(GUILD_ID, user_id, time.time() - 5, reason="spam")
        return db.get_expired_temp_bans()[0]

    @pytest.mark.asyncio
    async def test_lift_unbans(self, scheduler, guild_online, test_db):
        record = self.expired_record(test_db)

        assert await scheduler.lift(record) is True

        guild_online.unban.assert_awaited_once()
        assert guild_online.unban.call_args.args[0].id == 42
        assert test_db.get_expired_temp_bans() == []

    @pytest.mark.asyncio
    async def test_already_unbanned_counts_as_done(self, scheduler, guild_online, test_db):
        guild_online.unban.side_effect = not_found("Unknown Ban")
        assert await scheduler.lift(self.expired_record(test_db)) is True

    @pytest.mark.asyncio
    async def test_second_lift_does_nothing(self, scheduler, guild_online, test_db):
        record = self.expired_record(test_db)
        await scheduler.lift(record)

        assert await scheduler.lift(record) is False
        assert guild_online.unban.await_count == 1

    @pytest.mark.asyncio
    async def test_forbidden_drops_record(self, scheduler, guild_online, test_db):
        guild_online.unban.side_effect = forbidden()
        assert await scheduler.lift(self.expired_record(test_db)) is False
        assert test_db.get_expired_temp_bans() == []

    @pytest.mark.asyncio
    async def test_run_once_only_expired(self, scheduler, guild_online, test_db):
        test_db.add_temp_ban(GUILD_ID, 1, time.time() - 5)
        test_db.add_temp_ban(GUILD_ID, 2, time.time() + 3600)

        await scheduler.run_once()

        assert guild_online.unban.await_count == 1
        assert test_db.delete_temp_ban(GUILD_ID, 2) is True


# =============================================================================
# Jails
# =============================================================================

class TestJailScheduler:
    """Tests for jail expiry."""

    @pytest.mark.asyncio
    async def test_expired_jails_released(self, mock_bot, guild_online, test_db):
        mock_bot.jail_service = JailService(mock_bot)
        test_db.add_jail(GUILD_ID, 1, [], expires_at=time.time() - 5)
        test_db.add_jail(GUILD_ID, 2, [], expires_at=time.time() + 3600)
        test_db.add_jail(GUILD_ID, 3, [])

        await JailScheduler(mock_bot, interval=1).run_once()

        assert test_db.get_jail(GUILD_ID, 1) is None
        assert test_db.get_jail(GUILD_ID, 2) is not None
        assert test_db.get_jail(GUILD_ID, 3) is not None

    @pytest.mark.asyncio
    async def test_failing_release_does_not_stop_batch(self, mock_bot, test_db):
        mock_bot.jail_service = AsyncMock()
        mock_bot.jail_service.unjail.side_effect = [RuntimeError("boom"), True]
        test_db.add_jail(GUILD_ID, 1, [], expires_at=time.time() - 10)
        test_db.add_jail(GUILD_ID, 2, [], expires_at=time.time() - 5)

        await JailScheduler(mock_bot, interval=1).run_once()

        assert mock_bot.jail_service.unjail.await_count == 2


# =============================================================================
# Logging Cleanup
# =============================================================================

class TestLoggingCleanupScheduler:
    """Tests for stale logging guild removal."""

    @pytest.mark.asyncio
    async def test_stale_guild_removed(self, mock_bot, test_db):
        test_db.store_member_roles(GUILD_ID, 1, [10])
        test_db.touch_logging_guild(GUILD_ID, now=time.time() - 10 * 86400)
        test_db.store_member_roles(2, 1, [10])

        await LoggingCleanupScheduler(mock_bot, interval=1, retention_days=7).run_once()

        assert test_db.get_member_roles(GUILD_ID, 1) is None
        assert test_db.get_member_roles(2, 1) == [10]


# =============================================================================
# Periodic Loop
# =============================================================================

class CountingWorker(PeriodicWorker):
    name = "Counting Worker"

    def __init__(self, bot, fail_first=False):
        super().__init__(bot, interval=0.01)
        self.runs = 0
        self.fail_first = fail_first

    async def run_once(self):
        self.runs += 1
        if self.fail_first and self.runs == 1:
            raise RuntimeError("first pass fails")


class TestPeriodicWorker:
    """Tests for the shared worker lifecycle."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, mock_bot):
        worker = CountingWorker(mock_bot)
        await worker.start()
        await asyncio.sleep(0.05)
        await worker.stop()

        assert worker.runs >= 1
        assert worker.running is False
        assert worker.task.done()
        mock_bot.wait_until_ready.assert_awaited()

    @pytest.mark.asyncio
    async def test_failed_pass_keeps_looping(self, mock_bot):
        worker = CountingWorker(mock_bot, fail_first=True)
        await worker.start()
        await asyncio.sleep(0.05)
        await worker.stop()

        assert worker.runs >= 2

    @pytest.mark.asyncio
    async def test_base_run_once_not_implemented(self, mock_bot):
        with pytest.raises(NotImplementedError):
            await PeriodicWorker(mock_bot, 1).run_once()

"""
Unit Tests for Streak Tracking.

Tests for:
- Current and longest streak calculation
- Streak grace period (yesterday keeps the streak alive)
- Timezone-aware study dates
- Activity levels for heatmaps
- StreakData assembly
"""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest

from studytrack.services.tracking.streak_tracking import (
    StreakTrackingService,
    calculate_activity_level,
    local_date,
)
from tests.conftest import rows_result

TODAY = date(2024, 5, 10)


def days_ago(*offsets: int) -> list[date]:
    return sorted((TODAY - timedelta(days=o) for o in offsets), reverse=True)


# =============================================================================
# Streak Calculation
# =============================================================================


class TestCurrentStreak:
    def test_three_consecutive_days_ending_today(self):
        streak, start = StreakTrackingService.calculate_current_streak(
            days_ago(0, 1, 2), TODAY
        )
        assert streak == 3
        assert start == TODAY - timedelta(days=2)

    def test_not_studied_today_yet(self):
        streak, _ = StreakTrackingService.calculate_current_streak(days_ago(1, 2), TODAY)
        assert streak == 2

    def test_broken_streak(self):
        dates = days_ago(2, 3)
        streak, start = StreakTrackingService.calculate_current_streak(dates, TODAY)
        assert streak == 0
        assert start is None
        assert StreakTrackingService.calculate_longest_streak(dates) == 2

    def test_gap_stops_counting(self):
        streak, _ = StreakTrackingService.calculate_current_streak(
            days_ago(0, 1, 3, 4, 5), TODAY
        )
        assert streak == 2

    def test_empty(self):
        assert StreakTrackingService.calculate_current_streak([], TODAY) == (0, None)


class TestLongestStreak:
    def test_picks_longest_run(self):
        dates = days_ago(0, 1, 5, 6, 7, 8)
        assert StreakTrackingService.calculate_longest_streak(dates) == 4

    def test_ignores_duplicates_and_order(self):
        dates = [TODAY, TODAY - timedelta(days=2), TODAY, TODAY - timedelta(days=1)]
        assert StreakTrackingService.calculate_longest_streak(dates) == 3

    def test_empty(self):
        assert StreakTrackingService.calculate_longest_streak([]) == 0


class TestBuildStreakData:
    def test_no_history(self):
        data = StreakTrackingService.build_streak_data([], TODAY)
        assert data.current_streak == 0
        assert data.longest_streak == 0
        assert data.last_activity is None
        assert data.next_milestone == 7

    def test_milestones_and_period_counts(self):
        dates = days_ago(*range(0, 8)) + days_ago(20)
        data = StreakTrackingService.build_streak_data(dates, TODAY)

        assert data.current_streak == 8
        assert data.is_active_today
        assert data.milestones_reached == [7]
        assert data.next_milestone == 14
        assert data.days_this_week == 7
        assert data.days_this_month == 9


# =============================================================================
# Timezones
# =============================================================================


class TestLocalDate:
    def test_late_evening_utc_is_next_day_in_tokyo(self):
        ts = datetime(2024, 5, 9, 22, 30, tzinfo=timezone.utc)
        assert local_date(ts, ZoneInfo("Asia/Tokyo")) == date(2024, 5, 10)
        assert local_date(ts, timezone.utc) == date(2024, 5, 9)

    def test_naive_timestamps_are_utc(self):
        assert local_date(datetime(2024, 5, 9, 23, 0), ZoneInfo("America/New_York")) == date(
            2024, 5, 9
        )

    @pytest.mark.asyncio
    async def test_streak_follows_owner_timezone(self, mock_db_session: MagicMock):
        # 23:30 UTC on consecutive days is the following morning in Tokyo
        completions = [
            datetime(2024, 5, 8, 23, 30, tzinfo=timezone.utc),
            datetime(2024, 5, 9, 23, 30, tzinfo=timezone.utc),
        ]
        mock_db_session.execute.return_value = rows_result([(ts,) for ts in completions])
        service = StreakTrackingService(mock_db_session)

        tokyo = await service.get_streak_data(
            "user-1", ZoneInfo("Asia/Tokyo"), today=date(2024, 5, 10)
        )
        assert tokyo.current_streak == 2
        assert tokyo.is_active_today
        assert tokyo.last_activity == date(2024, 5, 10)

        utc = await service.get_streak_data("user-1", timezone.utc, today=date(2024, 5, 10))
        assert utc.current_streak == 2
        assert not utc.is_active_today
        assert utc.last_activity == date(2024, 5, 9)


# =============================================================================
# Activity History
# =============================================================================


class TestActivityLevel:
    @pytest.mark.parametrize(
        "count,max_count,expected",
        [(0, 10, 0), (1, 0, 0), (1, 10, 1), (3, 10, 2), (5, 10, 3), (8, 10, 4), (10, 10, 4)],
    )
    def test_levels(self, count: int, max_count: int, expected: int):
        assert calculate_activity_level(count, max_count) == expected


class TestActivityHistory:
    @pytest.mark.asyncio
    async def test_groups_by_local_day(self, mock_db_session: MagicMock):
        now = datetime.now(timezone.utc).replace(hour=12, minute=0, second=0, microsecond=0)
        yesterday = now - timedelta(days=1)
        mock_db_session.execute.return_value = rows_result(
            [(now, 30), (now - timedelta(hours=1), 20), (yesterday, 45)]
        )
        service = StreakTrackingService(mock_db_session)

        history = await service.get_activity_history("user-1", timezone.utc, weeks=4)

        assert history.total_active_days == 2
        assert history.total_sessions == 3
        assert history.max_daily_count == 2
        assert [d.count for d in history.days] == [1, 2]
        assert [d.minutes for d in history.days] == [45, 50]
        assert [d.level for d in history.days] == [3, 4]

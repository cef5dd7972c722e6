from __future__ import annotations

import pandas as pd
import pytest

from phixforge.analysis import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_PENDING,
    add_months,
    project_status,
    project_timeline,
)


def test_halfway_through_two_year_grant() -> None:
    tl = project_timeline("2024-01-15", 24, 0, now="2025-01-15")
    assert tl.end_date == pd.Timestamp("2026-01-15")
    assert tl.progress_pct == pytest.approx(50.0, abs=0.1)
    assert tl.months_remaining == 12


def test_progress_clamped_before_start_and_after_end() -> None:
    before = project_timeline("2024-01-15", 24, now="2023-06-01")
    after = project_timeline("2024-01-15", 24, now="2027-06-01")
    assert before.progress_pct == 0.0
    assert after.progress_pct == 100.0
    assert after.months_remaining == 0


def test_progress_never_decreases() -> None:
    nows = pd.date_range("2023-10-01", "2026-06-01", freq="17D")
    values = [project_timeline("2024-01-15", 24, now=n).progress_pct for n in nows]
    assert values == sorted(values)
    assert all(0.0 <= v <= 100.0 for v in values)


def test_extension_moves_end_date_only() -> None:
    tl = project_timeline("2024-01-15", 24, 6, now="2025-01-15")
    assert tl.end_date == pd.Timestamp("2026-07-15")
    assert tl.progress_pct < 50.0


def test_month_end_is_clamped() -> None:
    assert add_months(pd.Timestamp("2024-01-31"), 1) == pd.Timestamp("2024-02-29")
    assert add_months(pd.Timestamp("2023-08-31"), 6) == pd.Timestamp("2024-02-29")


def test_zero_length_window_reads_zero() -> None:
    tl = project_timeline("2024-01-15", 0, now="2024-01-15")
    assert tl.progress_pct == 0.0


@pytest.mark.parametrize("start,duration", [("garbage", 12), (None, 12), ("2024-01-01", None), ("2024-01-01", "x")])
def test_unusable_inputs_give_no_timeline(start, duration) -> None:
    assert project_timeline(start, duration, now="2025-01-01") is None


def test_status_pending_when_not_granted() -> None:
    p = {"isGranted": False, "isCompleted": True, "startDate": "2020-01-01", "durationMonths": 12}
    assert project_status(p, now="2025-01-01") == STATUS_PENDING


def test_completed_flag_overrides_dates() -> None:
    p = {"isGranted": True, "isCompleted": True, "startDate": "2024-01-01", "durationMonths": 48}
    assert project_status(p, now="2025-01-01") == STATUS_COMPLETED


def test_status_from_date_window() -> None:
    p = {"isGranted": True, "startDate": "2024-01-01", "durationMonths": 24}
    assert project_status(p, now="2023-12-01") == STATUS_PENDING
    assert project_status(p, now="2025-01-01") == STATUS_ACTIVE
    assert project_status(p, now="2026-01-01") == STATUS_COMPLETED
    assert project_status(p, now="2026-03-01") == STATUS_COMPLETED


def test_extension_keeps_project_active() -> None:
    p = {"isGranted": True, "startDate": "2023-01-01", "durationMonths": 24, "extensionMonths": 6}
    assert project_status(p, now="2025-03-01") == STATUS_ACTIVE
    p["extensionMonths"] = 0
    assert project_status(p, now="2025-03-01") == STATUS_COMPLETED


def test_granted_without_dates_is_pending() -> None:
    assert project_status({"isGranted": True}, now="2025-01-01") == STATUS_PENDING

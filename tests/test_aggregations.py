from __future__ import annotations

import copy

import pandas as pd
import pytest

from phixforge.analysis import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_PENDING,
    apply_filters,
    clean_and_parse,
    compute_programme_success,
    compute_rankings,
    compute_statistics,
    compute_temporal_trend,
    generate_headlines,
    get_available_programmes,
    get_available_years,
    rank_counts,
    success_rate,
    summarize_portfolio,
)
from tests.conftest import NOW


# =============================================================================
# rank_counts
# =============================================================================

def test_rank_counts_drops_empty_values() -> None:
    out = rank_counts(["x", "", None, float("nan"), "  ", "x", "y"])
    assert out["Name"].tolist() == ["x", "y"]
    assert out["Count"].tolist() == [2, 1]


def test_rank_counts_flattens_lists() -> None:
    out = rank_counts([["a", "b"], [], None, ["b", ""], ["b"]])
    assert out.to_dict("records") == [{"Name": "b", "Count": 3}, {"Name": "a", "Count": 1}]


def test_rank_counts_top_n_sorted_and_ties_first_seen() -> None:
    values = ["c", "a", "b", "a", "d", "b", "e"]
    out = rank_counts(values, n=3)
    assert len(out) == 3
    assert out["Name"].tolist() == ["a", "b", "c"]
    assert out["Count"].is_monotonic_decreasing


def test_rank_counts_empty_input() -> None:
    out = rank_counts([])
    assert len(out) == 0
    assert list(out.columns) == ["Name", "Count"]


# =============================================================================
# parsing + filters
# =============================================================================

def test_parse_blanks_grant_facts_when_not_granted() -> None:
    df, _ = clean_and_parse([{
        "id": "x", "isGranted": False, "isCompleted": True,
        "startDate": "2024-01-01", "durationMonths": 12, "extensionMonths": 3,
    }], now=NOW)
    row = df.iloc[0]
    assert not row["Is_Completed"]
    assert pd.isna(row["Start_Date"])
    assert pd.isna(row["Duration_Months"])
    assert pd.isna(row["End_Date"])
    assert pd.isna(row["Progress_Pct"])
    assert row["Status"] == STATUS_PENDING


def test_parse_derives_budget_and_status(proposals) -> None:
    df, rep = clean_and_parse(proposals, now=NOW)
    by_id = df.set_index("Proposal_Id")
    assert by_id.loc["a", "Phix_Budget"] == 65000
    assert by_id.loc["a", "Co_Funding"] == pytest.approx(19500)
    assert by_id.loc["d", "Phix_Budget"] == 11250
    assert by_id.loc["d", "Co_Funding"] == pytest.approx(5625)
    assert by_id.loc["b", "Phix_Budget"] == 40000
    assert by_id["Status"].to_dict() == {
        "a": STATUS_ACTIVE, "b": STATUS_PENDING, "c": STATUS_COMPLETED,
        "d": STATUS_COMPLETED, "e": STATUS_PENDING,
    }
    assert pd.isna(by_id.loc["d", "Deadline_Year"])
    assert rep.raw_records == rep.parsed_records == 5
    assert any("deadline" in n for n in rep.notes)


def test_parse_does_not_mutate_input(proposals) -> None:
    before = copy.deepcopy(proposals)
    clean_and_parse(proposals, now=NOW)
    assert proposals == before


def test_year_filter_uses_deadline_year(proposals) -> None:
    df_all, _ = clean_and_parse(proposals, now=NOW)
    df, rep = apply_filters(df_all, year=2024)
    assert sorted(df["Proposal_Id"]) == ["b", "c", "e"]
    assert rep.raw_records == 5
    assert rep.excluded_missing_deadline == 1
    assert rep.excluded_other_year == 1
    assert rep.final_records == 3


def test_programme_filter_composes_with_year(proposals) -> None:
    df_all, _ = clean_and_parse(proposals, now=NOW)
    df, rep = apply_filters(df_all, year=2024, programme="Horizon")
    assert df["Proposal_Id"].tolist() == ["b"]
    assert rep.excluded_other_programme == 2


def test_no_filter_keeps_everything(proposals) -> None:
    df_all, _ = clean_and_parse(proposals, now=NOW)
    df, rep = apply_filters(df_all)
    assert len(df) == 5
    assert rep.excluded_missing_deadline == 0


def test_filter_options(proposals) -> None:
    df_all, _ = clean_and_parse(proposals, now=NOW)
    assert get_available_years(df_all) == [2024, 2023]
    assert get_available_programmes(df_all) == ["Digital Europe", "Eureka", "Horizon"]


# =============================================================================
# rankings, programmes, trend
# =============================================================================

def test_rankings_cover_granted_only(proposals) -> None:
    df, _ = clean_and_parse(proposals, now=NOW)
    ranks = compute_rankings(df)
    assert ranks["top_processes"]["Name"].tolist() == ["proc-1", "proc-2", "proc-3"]
    assert ranks["top_partners"].to_dict("records") == [
        {"Name": "Uni A", "Count": 2}, {"Name": "Fab B", "Count": 1},
    ]
    assert ranks["partner_countries"]["Name"].tolist() == ["NL", "DE", "BE"]
    assert ranks["wavelengths"]["Name"].tolist() == ["C-band", "O-band"]
    assert ranks["applications"]["Name"].tolist() == ["Datacom", "Sensing"]


def test_rankings_resolve_process_names(proposals) -> None:
    df, _ = clean_and_parse(proposals, now=NOW)
    ranks = compute_rankings(df, process_names={"proc-1": "Flip-chip"})
    assert ranks["top_processes"]["Name"].tolist()[:2] == ["Flip-chip", "proc-2"]


def test_top_processes_truncated_to_five() -> None:
    records = [{"isGranted": True, "phixProcesses": [f"p{i}" for i in range(8)]}]
    df, _ = clean_and_parse(records, now=NOW)
    assert len(compute_rankings(df)["top_processes"]) == 5


def test_programme_success_rates(proposals) -> None:
    out = compute_programme_success(clean_and_parse(proposals, now=NOW)[0])
    assert out["Programme"].tolist() == ["Horizon", "Digital Europe", "Eureka"]
    horizon = out.set_index("Programme").loc["Horizon"]
    assert horizon["Total"] == 2
    assert horizon["Granted"] == 1
    assert horizon["Rate_Pct"] == 50


def test_two_horizon_proposals_one_granted() -> None:
    df, _ = clean_and_parse([
        {"programme": "Horizon", "isGranted": True},
        {"programme": "Horizon", "isGranted": False},
    ])
    out = compute_programme_success(df)
    assert out.loc[0, "Rate_Pct"] == 50


def test_success_rate_zero_denominator() -> None:
    assert success_rate(0, 0) == 0
    assert success_rate(3, 4) == 75


def test_temporal_trend(proposals) -> None:
    out = compute_temporal_trend(clean_and_parse(proposals, now=NOW)[0])
    assert out.to_dict("records") == [
        {"Year": 2023, "Submitted": 1, "Granted": 1},
        {"Year": 2024, "Submitted": 3, "Granted": 1},
    ]


def test_empty_tables_for_empty_input() -> None:
    df, _ = clean_and_parse([])
    assert len(compute_programme_success(df)) == 0
    assert len(compute_temporal_trend(df)) == 0
    assert all(len(v) == 0 for v in compute_rankings(df).values())


# =============================================================================
# portfolio summary
# =============================================================================

def test_portfolio_summary(proposals) -> None:
    df, _ = clean_and_parse(proposals, now=NOW)
    s = summarize_portfolio(df)
    assert s["total_proposals"] == 5
    assert s["granted_proposals"] == 3
    assert s["success_rate"] == pytest.approx(60.0)
    assert s["total_budget"] == pytest.approx(176250)
    assert s["co_funding"] == pytest.approx(25125)
    assert s["avg_budget"] == pytest.approx(58750)
    assert s["active_projects"] == 1
    assert s["completed_projects"] == 2


def test_empty_portfolio_summary() -> None:
    df, _ = clean_and_parse([])
    s = summarize_portfolio(df)
    assert s["total_proposals"] == 0
    assert s["granted_proposals"] == 0
    assert s["success_rate"] == 0
    assert s["total_budget"] == 0
    assert s["avg_budget"] == 0


def test_statistics_keep_programme_and_trend_unfiltered(proposals) -> None:
    stats = compute_statistics(proposals, programme="Eureka", now=NOW)
    assert stats["summary"]["total_proposals"] == 1
    assert stats["summary"]["total_budget"] == 11250
    assert len(stats["programmes"]) == 3
    assert stats["temporal"]["Submitted"].sum() == 4
    assert stats["top_processes"]["Name"].tolist() == ["proc-3"]
    assert stats["filter_report"].final_records == 1


def test_statistics_with_year_filter(proposals) -> None:
    stats = compute_statistics(proposals, year=2024, now=NOW)
    summary = stats["summary"]
    assert summary["total_proposals"] == 3
    assert summary["granted_proposals"] == 1
    assert summary["success_rate"] == pytest.approx(100 / 3)
    assert summary["total_budget"] == 100000
    assert summary["co_funding"] == 0


def test_headlines(proposals) -> None:
    assert generate_headlines(summarize_portfolio(clean_and_parse([])[0])) == [
        "No proposals in the current selection."
    ]
    lines = generate_headlines(summarize_portfolio(clean_and_parse(proposals, now=NOW)[0]))
    assert "60.0% success rate" in lines[0]
    assert any("Co-funding" in line for line in lines)

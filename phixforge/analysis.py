"""
Proposal Portfolio: Budget vs Co-Funding vs Timeline
====================================================

This module powers the Streamlit dashboard and the Word proposal report.

Core business definitions (IMPORTANT)
------------------------------------
1) WORK PACKAGE SUBTOTAL = PHIX Person-Months × Person-Month Rate
                           + Σ Other Goods & Services + Σ Travel & Project Management.
   - In data: workPackages[].phixPersonMonths / personMonthRate / otherCosts / travelCosts

2) DIRECT COSTS = Σ work package subtotals.

3) OVERHEAD = Direct Costs × 25%.
   - Applied ONCE to the aggregate, never per work package.

4) PHIX BUDGET = Direct Costs + Overhead (= Direct Costs × 1.25).
   - Records without work packages fall back to the stored phixBudget.

5) CO-FUNDING = PHIX Budget × (100 - Funded %) / 100.
   - Zero when the proposal is 100% funded.

Status lens
-----------
Pending   = not granted, or granted but not running yet (no usable start/duration,
            or start date still ahead).
Active    = granted, not flagged completed, start < now < effective end.
Completed = granted and flagged completed, or now >= effective end.
Effective end = start + duration + extension (calendar months, month-end clamped).

Filtered vs unfiltered
----------------------
The year/programme filter drives the portfolio summary and the rankings.
Programme success rates and the yearly trend always read the FULL dataset:
they are programme-wide statistics, not views of the current selection.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from phixforge.models import Proposal, WorkPackage, as_proposal

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIG
# =============================================================================

OVERHEAD_RATE = 0.25

AVG_DAYS_PER_MONTH = 365.2425 / 12  # Gregorian average

TOP_PROCESSES_N = 5
TOP_PARTNERS_N = 10

DEFAULT_PROGRAMMES = [
    "Horizon Europe", "Digital Europe", "Chips JU", "EIC", "Eureka", "Interreg", "National",
]

STATUS_ACTIVE = "Active"
STATUS_COMPLETED = "Completed"
STATUS_PENDING = "Pending"

PROPOSAL_COLUMNS = [
    "Proposal_Id", "Acronym", "Programme", "Call", "Type",
    "Deadline", "Deadline_Year", "Funded_Pct", "Total_Budget",
    "Is_Granted", "Is_Completed", "Start_Date", "Duration_Months", "Extension_Months",
    "End_Date", "Progress_Pct", "Months_Remaining", "Status",
    "Direct_Costs", "Overhead", "Phix_Budget", "Co_Funding",
    "Application", "Wavelengths", "Processes", "Partner_Names", "Partner_Countries",
]


# =============================================================================
# HELPERS
# =============================================================================

def _as_str(x) -> str:
    return "" if x is None or (not isinstance(x, (list, tuple, dict)) and pd.isna(x)) else str(x).strip()

def _as_float(x) -> float:
    if x is None or isinstance(x, bool):
        return float(x) if isinstance(x, bool) else 0.0
    if isinstance(x, (int, float, np.number)):
        return 0.0 if pd.isna(x) else float(x)
    s = str(x).strip()
    if s == "":
        return 0.0
    # remove currency symbols and grouping commas
    s = s.replace("€", "").replace("$", "").replace(",", "")
    try:
        return float(s)
    except ValueError:
        return 0.0

def _as_int(x, default: Optional[int] = None) -> Optional[int]:
    if x is None or isinstance(x, bool):
        return default
    try:
        v = float(x)
    except (TypeError, ValueError):
        return default
    return default if math.isnan(v) else int(v)

def _as_bool_like(x) -> Optional[bool]:
    if x is None or (not isinstance(x, (list, tuple, dict)) and pd.isna(x)):
        return None
    s = str(x).strip().lower()
    if s in {"yes", "y", "true", "1"}:
        return True
    if s in {"no", "n", "false", "0", ""}:
        return False
    return None

def _to_timestamp(x) -> Optional[pd.Timestamp]:
    """Parse a date-like value; anything unparseable becomes None."""
    if x is None or (isinstance(x, str) and not x.strip()):
        return None
    ts = pd.to_datetime(x, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts

def _now(now=None) -> pd.Timestamp:
    ts = _to_timestamp(now) if now is not None else None
    return ts if ts is not None else pd.Timestamp.now()

def safe_div(n, d):
    """Vector-safe divide. Supports scalars, numpy arrays, and pandas Series."""
    n_arr = np.asarray(n, dtype="float64")
    d_arr = np.asarray(d, dtype="float64")
    out = np.zeros_like(n_arr, dtype="float64")
    np.divide(n_arr, d_arr, out=out, where=d_arr != 0)
    # Preserve scalar return type when inputs are scalar
    return float(out) if out.shape == () else out

def pct(n, d):
    """Percent = (n/d)*100 with vector-safe divide."""
    return safe_div(n, d) * 100.0

def add_months(start: pd.Timestamp, months: int) -> pd.Timestamp:
    """Calendar month arithmetic; Jan 31 + 1 month clamps to the end of February."""
    return start + pd.DateOffset(months=int(months))


# =============================================================================
# BUDGET ROLLUP (per proposal)
# =============================================================================

@dataclass
class BudgetRollup:
    direct_costs: float
    overhead: float
    phix_budget: float

def _as_work_package(wp) -> WorkPackage:
    return wp if isinstance(wp, WorkPackage) else WorkPackage.from_dict(wp)

def work_package_subtotal(wp) -> float:
    """Person-month cost plus other and travel costs. Sign is not checked."""
    wp = _as_work_package(wp)
    pm_cost = _as_float(wp.phix_person_months) * _as_float(wp.person_month_rate)
    other = sum(_as_float(c.value) for c in wp.other_costs)
    travel = sum(_as_float(c.value) for c in wp.travel_costs)
    return float(pm_cost + other + travel)

def budget_rollup(work_packages) -> BudgetRollup:
    direct = float(sum(work_package_subtotal(wp) for wp in work_packages or []))
    overhead = direct * OVERHEAD_RATE
    return BudgetRollup(direct_costs=direct, overhead=overhead, phix_budget=direct + overhead)

def work_package_breakdown(work_packages) -> pd.DataFrame:
    """One row per work package with the pieces of its subtotal."""
    rows = []
    for raw in work_packages or []:
        wp = _as_work_package(raw)
        pm = _as_float(wp.phix_person_months)
        rate = _as_float(wp.person_month_rate)
        rows.append({
            "Number": _as_str(wp.number),
            "Lead_Partner": _as_str(wp.lead_partner),
            "Person_Months": pm,
            "Person_Month_Rate": rate,
            "Person_Month_Cost": pm * rate,
            "Other_Costs": float(sum(_as_float(c.value) for c in wp.other_costs)),
            "Travel_Costs": float(sum(_as_float(c.value) for c in wp.travel_costs)),
            "Subtotal": work_package_subtotal(wp),
        })
    return pd.DataFrame(rows, columns=[
        "Number", "Lead_Partner", "Person_Months", "Person_Month_Rate",
        "Person_Month_Cost", "Other_Costs", "Travel_Costs", "Subtotal",
    ])

def effective_budget(proposal) -> BudgetRollup:
    """Work-package rollup when the record has work packages, else the stored phixBudget."""
    p = as_proposal(proposal)
    if p.work_packages:
        return budget_rollup(p.work_packages)
    phix = _as_float(p.phix_budget)
    direct = safe_div(phix, 1.0 + OVERHEAD_RATE)
    return BudgetRollup(direct_costs=direct, overhead=phix - direct, phix_budget=phix)


# =============================================================================
# CO-FUNDING
# =============================================================================

def co_funding_gap(budget, funded_percent) -> float:
    """Amount the organisation must co-finance: budget × uncovered share."""
    fp = _as_float(funded_percent)
    if fp == 100:
        return 0.0
    return _as_float(budget) * (100.0 - fp) / 100.0


# =============================================================================
# TIMELINE / STATUS
# =============================================================================

@dataclass
class Timeline:
    progress_pct: float
    months_remaining: int
    end_date: pd.Timestamp

def project_timeline(start_date, duration_months, extension_months=0, now=None) -> Optional[Timeline]:
    """Progress through the grant window. None when start or duration is unusable."""
    start = _to_timestamp(start_date)
    duration = _as_int(duration_months)
    if start is None or duration is None:
        return None
    end = add_months(start, duration + (_as_int(extension_months, 0) or 0))
    now_ts = _now(now)

    total = (end - start).total_seconds()
    elapsed = (now_ts - start).total_seconds()
    progress = float(np.clip(pct(elapsed, total), 0.0, 100.0))

    days_left = (end - now_ts).total_seconds() / 86400.0
    months_remaining = max(0, math.ceil(days_left / AVG_DAYS_PER_MONTH))
    return Timeline(progress_pct=progress, months_remaining=months_remaining, end_date=end)

def project_status(proposal, now=None) -> str:
    p = as_proposal(proposal)
    if _as_bool_like(p.is_granted) is not True:
        return STATUS_PENDING
    # Explicit flag wins over the date window
    if _as_bool_like(p.is_completed) is True:
        return STATUS_COMPLETED

    timeline = project_timeline(p.start_date, p.duration_months, p.extension_months, now)
    if timeline is None:
        return STATUS_PENDING
    now_ts = _now(now)
    if now_ts >= timeline.end_date:
        return STATUS_COMPLETED
    if now_ts > _to_timestamp(p.start_date) and timeline.months_remaining > 0:
        return STATUS_ACTIVE
    return STATUS_PENDING


# =============================================================================
# PARSING
# =============================================================================

@dataclass
class ParseReport:
    raw_records: int
    parsed_records: int
    notes: List[str]

def _proposal_row(record, now) -> Dict:
    p = as_proposal(record)
    granted = _as_bool_like(p.is_granted) is True
    budget = effective_budget(p)
    funded = _as_float(p.funded_percent)

    timeline = None
    if granted:
        timeline = project_timeline(p.start_date, p.duration_months, p.extension_months, now)

    return {
        "Proposal_Id": _as_str(p.id),
        "Acronym": _as_str(p.acronym),
        "Programme": _as_str(p.programme),
        "Call": _as_str(p.call),
        "Type": _as_str(p.type),
        "Deadline": _to_timestamp(p.deadline),
        "Funded_Pct": funded,
        "Total_Budget": _as_float(p.total_budget),
        "Is_Granted": granted,
        # Grant facts are blanked for ungranted proposals
        "Is_Completed": granted and _as_bool_like(p.is_completed) is True,
        "Start_Date": _to_timestamp(p.start_date) if granted else None,
        "Duration_Months": _as_int(p.duration_months) if granted else None,
        "Extension_Months": (_as_int(p.extension_months, 0) or 0) if granted else None,
        "End_Date": timeline.end_date if timeline else None,
        "Progress_Pct": timeline.progress_pct if timeline else np.nan,
        "Months_Remaining": timeline.months_remaining if timeline else np.nan,
        "Status": project_status(p, now),
        "Direct_Costs": budget.direct_costs,
        "Overhead": budget.overhead,
        "Phix_Budget": budget.phix_budget,
        "Co_Funding": co_funding_gap(budget.phix_budget, funded),
        "Application": _as_str(p.project_application),
        "Wavelengths": list(p.wavelengths or []),
        "Processes": list(p.phix_processes or []),
        "Partner_Names": [_as_str(x.name) for x in p.partners],
        "Partner_Countries": [_as_str(x.country) for x in p.partners],
    }

def clean_and_parse(proposals: Iterable, now=None) -> Tuple[pd.DataFrame, ParseReport]:
    """
    One canonical row per proposal with every derived figure attached.
    Accepts stored dicts or Proposal objects; the input is never mutated.
    """
    records = list(proposals or [])
    notes: List[str] = []
    rows = [_proposal_row(r, now) for r in records]
    out = pd.DataFrame(rows, columns=PROPOSAL_COLUMNS)

    for col in ["Deadline", "Start_Date", "End_Date"]:
        out[col] = pd.to_datetime(out[col], errors="coerce")
    out["Deadline_Year"] = out["Deadline"].dt.year.astype("Int64")
    for col in ["Is_Granted", "Is_Completed"]:
        out[col] = out[col].astype(bool)
    for col in ["Funded_Pct", "Total_Budget", "Direct_Costs", "Overhead", "Phix_Budget",
                "Co_Funding", "Progress_Pct", "Months_Remaining", "Duration_Months", "Extension_Months"]:
        out[col] = pd.to_numeric(out[col], errors="coerce").astype(float)

    missing_deadline = int(out["Deadline"].isna().sum())
    if missing_deadline:
        notes.append(f"{missing_deadline} proposal(s) without a usable deadline (excluded from yearly views)")
    out_of_range = int(((out["Funded_Pct"] < 0) | (out["Funded_Pct"] > 100)).sum())
    if out_of_range:
        notes.append(f"{out_of_range} proposal(s) with funded % outside 0-100")
    no_timeline = int((out["Is_Granted"] & out["End_Date"].isna()).sum())
    if no_timeline:
        notes.append(f"{no_timeline} granted proposal(s) without start date or duration")

    for note in notes:
        logger.debug(note)

    rep = ParseReport(raw_records=len(records), parsed_records=len(out), notes=notes)
    return out, rep


# =============================================================================
# FILTERING
# =============================================================================

@dataclass
class FilterReport:
    raw_records: int
    excluded_missing_deadline: int
    excluded_other_year: int
    excluded_other_programme: int
    final_records: int

def apply_filters(
    df: pd.DataFrame,
    *,
    year: Optional[int] = None,
    programme: Optional[str] = None,
) -> Tuple[pd.DataFrame, FilterReport]:
    """
    Year (calendar year of the deadline) and programme filters.
    Returns filtered df + reconciliation counts.
    """
    base = df.copy()
    raw_n = len(base)

    missing_deadline = 0
    other_year = 0
    if year is not None:
        mask_missing = base["Deadline_Year"].isna()
        missing_deadline = int(mask_missing.sum())
        base = base.loc[~mask_missing].copy()
        mask_year = base["Deadline_Year"] == int(year)
        other_year = int((~mask_year).sum())
        base = base.loc[mask_year].copy()

    other_programme = 0
    if programme:
        mask_prog = base["Programme"] == programme
        other_programme = int((~mask_prog).sum())
        base = base.loc[mask_prog].copy()

    rep = FilterReport(
        raw_records=raw_n,
        excluded_missing_deadline=missing_deadline,
        excluded_other_year=other_year,
        excluded_other_programme=other_programme,
        final_records=len(base),
    )
    return base, rep

def get_available_years(df: pd.DataFrame) -> List[int]:
    """Deadline years present in the data, newest first."""
    return sorted({int(y) for y in df["Deadline_Year"].dropna().unique()}, reverse=True)

def get_available_programmes(df: pd.DataFrame) -> List[str]:
    return sorted({p for p in df["Programme"] if p})


# =============================================================================
# RANKINGS (field → count → sorted top-N)
# =============================================================================

def rank_counts(values: Iterable, n: Optional[int] = None) -> pd.DataFrame:
    """
    Count occurrences per distinct value, most frequent first.

    ``values`` may hold scalars or lists (one count per list item). Empty and
    missing values are dropped. Ties keep first-seen order.
    """
    s = pd.Series(list(values), dtype="object").explode()
    s = s.map(_as_str)
    s = s[s != ""].reset_index(drop=True)
    if s.empty:
        return pd.DataFrame({"Name": pd.Series(dtype="object"), "Count": pd.Series(dtype="int64")})

    counts = s.groupby(s, sort=False).size().sort_values(ascending=False, kind="stable")
    out = counts.rename_axis("Name").reset_index(name="Count")
    if n is not None:
        out = out.head(n)
    return out.reset_index(drop=True)

def compute_rankings(
    df: pd.DataFrame,
    process_names: Optional[Dict[str, str]] = None,
) -> Dict[str, pd.DataFrame]:
    """Rankings over the granted proposals of ``df``."""
    granted = df.loc[df["Is_Granted"]]

    processes = granted["Processes"]
    if process_names:
        processes = processes.map(lambda ids: [process_names.get(i, i) for i in ids])

    return {
        "top_processes": rank_counts(processes, n=TOP_PROCESSES_N),
        "wavelengths": rank_counts(granted["Wavelengths"]),
        "applications": rank_counts(granted["Application"]),
        "top_partners": rank_counts(granted["Partner_Names"], n=TOP_PARTNERS_N),
        "partner_countries": rank_counts(granted["Partner_Countries"], n=TOP_PARTNERS_N),
    }


# =============================================================================
# PROGRAMME SUCCESS + TEMPORAL TREND (always the full dataset)
# =============================================================================

def success_rate(granted, total) -> float:
    return float(pct(granted, total))

def compute_programme_success(df_all: pd.DataFrame) -> pd.DataFrame:
    cols = ["Programme", "Total", "Granted", "Rate_Pct"]
    base = df_all.loc[df_all["Programme"] != ""]
    if base.empty:
        return pd.DataFrame(columns=cols)

    agg = base.groupby("Programme", sort=False).agg(
        Total=("Proposal_Id", "size"),
        Granted=("Is_Granted", "sum"),
    ).reset_index()
    agg["Total"] = agg["Total"].astype(int)
    agg["Granted"] = agg["Granted"].astype(int)
    agg["Rate_Pct"] = pct(agg["Granted"], agg["Total"])
    agg = agg.sort_values("Granted", ascending=False, kind="stable")
    return agg[cols].reset_index(drop=True)

def compute_temporal_trend(df_all: pd.DataFrame) -> pd.DataFrame:
    cols = ["Year", "Submitted", "Granted"]
    base = df_all.loc[df_all["Deadline_Year"].notna()]
    if base.empty:
        return pd.DataFrame(columns=cols)

    agg = base.groupby("Deadline_Year").agg(
        Submitted=("Proposal_Id", "size"),
        Granted=("Is_Granted", "sum"),
    ).reset_index().rename(columns={"Deadline_Year": "Year"})
    for col in cols:
        agg[col] = agg[col].astype(int)
    return agg.sort_values("Year")[cols].reset_index(drop=True)


# =============================================================================
# PORTFOLIO SUMMARY
# =============================================================================

def summarize_portfolio(df: pd.DataFrame) -> Dict[str, float]:
    total = len(df)
    granted = df.loc[df["Is_Granted"]]
    n_granted = len(granted)
    budget = float(granted["Phix_Budget"].sum()) if n_granted else 0.0
    co_funding = float(granted["Co_Funding"].sum()) if n_granted else 0.0

    return {
        "total_proposals": total,
        "granted_proposals": n_granted,
        "success_rate": success_rate(n_granted, total),
        "total_budget": budget,
        "co_funding": co_funding,
        "avg_budget": float(safe_div(budget, n_granted)),
        "active_projects": int((granted["Status"] == STATUS_ACTIVE).sum()),
        "completed_projects": int((granted["Status"] == STATUS_COMPLETED).sum()),
    }

def compute_statistics(
    proposals: Iterable,
    *,
    year: Optional[int] = None,
    programme: Optional[str] = None,
    now=None,
    process_names: Optional[Dict[str, str]] = None,
) -> Dict[str, object]:
    """Everything the dashboard shows, from one snapshot of the proposal list."""
    df_all, parse_rep = clean_and_parse(proposals, now=now)
    df, filter_rep = apply_filters(df_all, year=year, programme=programme)

    out: Dict[str, object] = {"summary": summarize_portfolio(df)}
    out.update(compute_rankings(df, process_names=process_names))
    out["programmes"] = compute_programme_success(df_all)
    out["temporal"] = compute_temporal_trend(df_all)
    out["proposals"] = df
    out["parse_report"] = parse_rep
    out["filter_report"] = filter_rep
    return out


# =============================================================================
# INSIGHTS
# =============================================================================

def generate_headlines(metrics: Dict[str, float]) -> List[str]:
    """
    Simple narrative bullets.
    """
    headlines: List[str] = []

    if metrics["total_proposals"] == 0:
        return ["No proposals in the current selection."]

    headlines.append(
        f"Portfolio: {metrics['total_proposals']:,} proposals | "
        f"{metrics['granted_proposals']:,} granted "
        f"({metrics['success_rate']:.1f}% success rate)."
    )

    if metrics["granted_proposals"] > 0:
        headlines.append(
            f"PHIX budget on granted proposals: €{metrics['total_budget']:,.0f} "
            f"(avg €{metrics['avg_budget']:,.0f} per grant)."
        )
        if metrics["co_funding"] > 0:
            share = pct(metrics["co_funding"], metrics["total_budget"])
            headlines.append(
                f"Co-funding to cover: €{metrics['co_funding']:,.0f} "
                f"({share:.1f}% of the granted PHIX budget)."
            )
        else:
            headlines.append("All granted proposals are fully funded (no co-funding required).")

        headlines.append(
            f"{metrics['active_projects']:,} project(s) running, "
            f"{metrics['completed_projects']:,} completed."
        )

    return headlines


METRIC_DEFINITIONS = {
    "Direct_Costs": {"name": "Direct Costs", "formula": "Σ (Person-Months × Rate + Other Costs + Travel Costs)", "description": "Sum of work package subtotals."},
    "Overhead": {"name": "Overhead (25%)", "formula": "Direct Costs × 0.25", "description": "Flat overhead, applied once to the total."},
    "Phix_Budget": {"name": "PHIX Budget", "formula": "Direct Costs × 1.25", "description": "Budget requested for PHIX, overhead included."},
    "Co_Funding": {"name": "Co-Funding", "formula": "PHIX Budget × (100 - Funded %) / 100", "description": "Share of the PHIX budget not covered by the funder."},
    "Success_Rate": {"name": "Success Rate (%)", "formula": "(Granted / Total) × 100", "description": "Share of proposals granted; 0 when there are no proposals."},
    "Progress_Pct": {"name": "Progress (%)", "formula": "(Now - Start) / (End - Start) × 100, clamped 0-100", "description": "Elapsed share of the grant window, extensions included."},
    "Months_Remaining": {"name": "Months Remaining", "formula": "ceil((End - Now) / average month)", "description": "Whole months left before the effective end date."},
}

"""Shared proposal fixtures.

Reference date for status/timeline checks is ``NOW`` (2025-06-01).
"""

from __future__ import annotations

import pytest

NOW = "2025-06-01"


def _wp(number, pm, rate, other=(), travel=()):
    return {
        "number": number,
        "phixPersonMonths": pm,
        "personMonthRate": rate,
        "otherCosts": [{"description": f"item {i}", "value": v} for i, v in enumerate(other)],
        "travelCosts": [{"description": f"trip {i}", "value": v} for i, v in enumerate(travel)],
    }


@pytest.fixture
def proposals() -> list[dict]:
    return [
        {
            # Active: 2023-09-01 .. 2025-09-01
            "id": "a", "acronym": "ALPHA", "programme": "Horizon", "call": "CL4", "type": "RIA",
            "deadline": "2023-03-10", "fundedPercent": 70, "totalBudget": 3_000_000,
            "isGranted": True, "startDate": "2023-09-01", "durationMonths": 24,
            "workPackages": [_wp("1", 10, 5000, other=[2000])],
            "phixProcesses": ["proc-1", "proc-2"], "wavelengths": ["O-band", "C-band"],
            "partners": [{"name": "Uni A", "country": "NL"}, {"name": "Fab B", "country": "DE"}],
            "projectApplication": "Datacom",
        },
        {
            "id": "b", "acronym": "BETA", "programme": "Horizon", "call": "CL4", "type": "IA",
            "deadline": "2024-02-01", "fundedPercent": 100, "totalBudget": 1_000_000,
            "isGranted": False, "phixBudget": 40000,
            "partners": [{"name": "Uni A", "country": "NL"}],
        },
        {
            # Completed by flag, window still open
            "id": "c", "acronym": "GAMMA", "programme": "Digital Europe", "call": "SKILLS", "type": "CSA",
            "deadline": "2024-05-20", "fundedPercent": 100, "totalBudget": 2_000_000,
            "isGranted": True, "isCompleted": True, "startDate": "2024-09-01", "durationMonths": 36,
            "phixBudget": 100000,
            "phixProcesses": ["proc-1"], "wavelengths": ["C-band"],
            "partners": [{"name": "Uni A", "country": "NL"}, {"name": "", "country": "BE"}],
            "projectApplication": "Sensing",
        },
        {
            # Completed by date; deadline unparseable
            "id": "d", "acronym": "DELTA", "programme": "Eureka", "call": "Xecs", "type": "IA",
            "deadline": "not-a-date", "fundedPercent": 50, "totalBudget": 500_000,
            "isGranted": True, "startDate": "2021-01-01", "durationMonths": 12,
            "workPackages": [_wp("1", 2, 4000, travel=[1000])],
            "phixProcesses": ["proc-3"], "projectApplication": "",
        },
        {
            "id": "e", "acronym": "EPSILON", "programme": "", "call": "Open", "type": "RIA",
            "deadline": "2024-11-30", "fundedPercent": 100, "totalBudget": 0,
            "isGranted": False,
        },
    ]

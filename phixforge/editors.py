"""
Table <-> record conversion for the Streamlit data editors.

``st.data_editor`` works on DataFrames; the store keeps camelCase dicts. The
helpers here turn nested record lists (work packages, cost items, contacts,
departments, team members) into editable frames and back, dropping rows the
user left blank.
"""

from typing import Dict, List, Tuple

import pandas as pd

from phixforge.models import Person

WORK_PACKAGE_COLUMNS = ["number", "description", "leadPartner", "phixPersonMonths", "personMonthRate"]
COST_COLUMNS = ["wp", "kind", "description", "value"]
CONTACT_COLUMNS = [
    "title", "gender", "firstName", "lastName", "email", "position",
    "department", "street", "town", "postcode", "country", "phone",
]
DEPARTMENT_COLUMNS = ["name", "street", "town", "postcode", "country"]


def _cell(value) -> str:
    if value is None or (not isinstance(value, (list, dict)) and pd.isna(value)):
        return ""
    return str(value).strip()

def _number(value) -> float:
    v = pd.to_numeric(value, errors="coerce")
    return 0.0 if pd.isna(v) else float(v)

def _filled_rows(df: pd.DataFrame, columns: List[str]) -> List[Dict[str, str]]:
    """Text rows of ``df`` restricted to ``columns``; all-blank rows are skipped."""
    rows = []
    for row in df.to_dict("records"):
        clean = {c: _cell(row.get(c)) for c in columns}
        if any(clean.values()):
            rows.append(clean)
    return rows


# =============================================================================
# WORK PACKAGES
# =============================================================================

def work_package_frames(proposal) -> Tuple[pd.DataFrame, pd.DataFrame]:
    wps = pd.DataFrame([{
        "number": wp.number, "description": wp.description, "leadPartner": wp.lead_partner,
        "phixPersonMonths": _number(wp.phix_person_months), "personMonthRate": _number(wp.person_month_rate),
    } for wp in proposal.work_packages], columns=WORK_PACKAGE_COLUMNS)
    costs = pd.DataFrame([
        {"wp": wp.number, "kind": kind, "description": c.description, "value": _number(c.value)}
        for wp in proposal.work_packages
        for kind, items in (("Other", wp.other_costs), ("Travel", wp.travel_costs))
        for c in items
    ], columns=COST_COLUMNS)
    return wps, costs

def collect_work_packages(wps: pd.DataFrame, costs: pd.DataFrame, previous) -> Tuple[List[Dict], int]:
    """
    Rebuild workPackages from the two editors.

    Returns the work packages plus the number of non-blank rows that could not
    be placed: work package rows without a number, and cost rows whose
    work package number does not exist. Unknown WP keys are kept from ``previous``.
    """
    by_number = {wp.number: wp.to_dict() for wp in previous}
    out = []
    dropped = 0
    for row in wps.to_dict("records"):
        number = _cell(row.get("number"))
        if not number:
            if any(_cell(row.get(c)) not in ("", "0", "0.0") for c in WORK_PACKAGE_COLUMNS):
                dropped += 1
            continue
        wp = dict(by_number.get(number, {}))
        wp.update({
            "number": number,
            "description": _cell(row.get("description")),
            "leadPartner": _cell(row.get("leadPartner")),
            "phixPersonMonths": _number(row.get("phixPersonMonths")),
            "personMonthRate": _number(row.get("personMonthRate")),
            "otherCosts": [],
            "travelCosts": [],
        })
        out.append(wp)

    index = {wp["number"]: wp for wp in out}
    for row in _filled_rows(costs, COST_COLUMNS):
        wp = index.get(row["wp"])
        if wp is None:
            dropped += 1
            continue
        key = "travelCosts" if row["kind"] == "Travel" else "otherCosts"
        wp[key].append({"description": row["description"], "value": _number(row["value"])})
    return out, dropped


# =============================================================================
# CONTACTS / DEPARTMENTS
# =============================================================================

def contacts_frame(contacts) -> pd.DataFrame:
    return pd.DataFrame(list(contacts or []), columns=CONTACT_COLUMNS)

def collect_contacts(df: pd.DataFrame) -> List[Dict[str, str]]:
    return _filled_rows(df, CONTACT_COLUMNS)

def departments_frame(departments) -> pd.DataFrame:
    return pd.DataFrame(list(departments or []), columns=DEPARTMENT_COLUMNS)

def collect_departments(df: pd.DataFrame) -> List[Dict[str, str]]:
    return _filled_rows(df, DEPARTMENT_COLUMNS)


# =============================================================================
# TEAM MEMBERS
# =============================================================================

def person_labels(people) -> Dict[str, str]:
    """id -> display name; duplicate names get a short id suffix so labels stay unique."""
    names = {}
    for record in people:
        person = Person.from_dict(record)
        names[person.id] = person.full_name or person.email or person.id
    counts = pd.Series(list(names.values()), dtype="object").value_counts()
    return {
        pid: f"{name} ({pid[:6]})" if counts[name] > 1 else name
        for pid, name in names.items()
    }

def selected_people_frame(selected, labels: Dict[str, str]) -> pd.DataFrame:
    return pd.DataFrame(
        [{"person": labels.get(sp.person_id, sp.person_id), "role": sp.role} for sp in selected],
        columns=["person", "role"],
    )

def collect_selected_people(df: pd.DataFrame, labels: Dict[str, str]) -> List[Dict[str, str]]:
    """Map edited labels back to person ids; rows naming no known person are dropped."""
    ids = {label: pid for pid, label in labels.items()}
    out = []
    for row in _filled_rows(df, ["person", "role"]):
        pid = ids.get(row["person"]) or (row["person"] if row["person"] in labels else None)
        if pid:
            out.append({"personId": pid, "role": row["role"]})
    return out

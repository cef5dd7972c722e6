"""Record types for proposals and the reusable reference data.

Records are persisted as camelCase JSON objects (the same shape as the JSON
backup). The dataclasses here give the rest of the package typed access and
convert back to the stored shape with ``to_dict``. Keys a dataclass does not
know about are kept in ``extra`` so a load/save cycle never drops data.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass
class _Record:
    """Flat record with camelCase (de)serialisation."""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        data = dict(data or {})
        kwargs: Dict[str, Any] = {}
        known = set()
        for f in fields(cls):
            if f.name == "extra":
                continue
            key = _camel(f.name)
            known.add(key)
            if data.get(key) is not None:
                kwargs[f.name] = data[key]
        if any(f.name == "extra" for f in fields(cls)):
            kwargs["extra"] = {k: v for k, v in data.items() if k not in known}
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if isinstance(value, list):
                value = [v.to_dict() if isinstance(v, _Record) else v for v in value]
            elif isinstance(value, _Record):
                value = value.to_dict()
            out[_camel(f.name)] = value
        out.update(getattr(self, "extra", {}) or {})
        return out


# =============================================================================
# PROPOSAL
# =============================================================================

@dataclass
class CostItem(_Record):
    description: str = ""
    value: float = 0.0


@dataclass
class Partner(_Record):
    name: str = ""
    country: str = ""


@dataclass
class SelectedPerson(_Record):
    person_id: str = ""
    role: str = ""


@dataclass
class WorkPackage(_Record):
    """One work package; its PHIX cost is person-months plus cost items."""

    number: str = ""
    description: str = ""
    lead_partner: str = ""
    involved_partners: List[str] = field(default_factory=list)
    phix_person_months: float = 0.0
    person_month_rate: float = 0.0
    other_costs: List[CostItem] = field(default_factory=list)
    travel_costs: List[CostItem] = field(default_factory=list)
    tasks: List[Dict[str, Any]] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WorkPackage":
        wp = super().from_dict(data)
        wp.other_costs = [CostItem.from_dict(c) for c in wp.other_costs or []]
        wp.travel_costs = [CostItem.from_dict(c) for c in wp.travel_costs or []]
        return wp


@dataclass
class Proposal(_Record):
    """A grant proposal. Grant facts only carry meaning when ``is_granted``."""

    id: str = ""
    acronym: str = ""
    programme: str = ""
    call: str = ""
    type: str = ""
    deadline: Optional[str] = None
    funded_percent: float = 100.0
    total_budget: float = 0.0
    phix_budget: float = 0.0
    is_granted: bool = False
    is_completed: bool = False
    start_date: Optional[str] = None
    duration_months: Optional[int] = None
    extension_months: int = 0
    project_application: str = ""
    pic_platform: str = ""
    phix_role: str = ""
    wavelengths: List[str] = field(default_factory=list)
    partners: List[Partner] = field(default_factory=list)
    work_packages: List[WorkPackage] = field(default_factory=list)
    phix_processes: List[str] = field(default_factory=list)
    publications: List[str] = field(default_factory=list)
    infrastructure: List[str] = field(default_factory=list)
    organizations: List[str] = field(default_factory=list)
    personnel_involvement: List[str] = field(default_factory=list)
    exploitation: List[str] = field(default_factory=list)
    company_description: List[str] = field(default_factory=list)
    related_projects: List[str] = field(default_factory=list)
    selected_people: List[SelectedPerson] = field(default_factory=list)
    phix_org_roles: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Proposal":
        p = super().from_dict(data)
        p.partners = [Partner.from_dict(x) for x in p.partners or []]
        p.work_packages = [WorkPackage.from_dict(x) for x in p.work_packages or []]
        p.selected_people = [SelectedPerson.from_dict(x) for x in p.selected_people or []]
        return p


def as_proposal(record) -> Proposal:
    return record if isinstance(record, Proposal) else Proposal.from_dict(record)


# =============================================================================
# REUSABLE DATA
# =============================================================================

@dataclass
class Process(_Record):
    id: str = ""
    name: str = ""
    description: str = ""


@dataclass
class Publication(_Record):
    id: str = ""
    title: str = ""
    metadata: str = ""


@dataclass
class Infrastructure(_Record):
    id: str = ""
    name: str = ""
    description: str = ""


@dataclass
class Person(_Record):
    id: str = ""
    title: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    position: str = ""
    gender: str = ""
    nationality: str = ""
    career_stage: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(x for x in (self.title, self.first_name, self.last_name) if x)


@dataclass
class Organization(_Record):
    id: str = ""
    legal_name: str = ""
    short_name: str = ""
    pic_number: str = ""
    departments: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PersonnelInvolvement(_Record):
    id: str = ""
    main_contact: Dict[str, Any] = field(default_factory=dict)
    other_contacts: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class Exploitation(_Record):
    id: str = ""
    name: str = ""
    description: str = ""
    targeted_end_users: str = ""
    competitors: str = ""
    market_overview: str = ""
    value_proposition: str = ""
    commercialization_measures: str = ""
    additional_support: str = ""
    expected_revenues: str = ""


@dataclass
class CompanyDescription(_Record):
    id: str = ""
    description: str = ""


@dataclass
class Project(_Record):
    id: str = ""
    name: str = ""
    call: str = ""
    website: str = ""
    short_description: str = ""
    status: str = "Ongoing"


RECORD_TYPES = {
    "proposals": Proposal,
    "projects": Project,
    "processes": Process,
    "publications": Publication,
    "infrastructure": Infrastructure,
    "people": Person,
    "organizations": Organization,
    "personnelInvolvement": PersonnelInvolvement,
    "exploitation": Exploitation,
    "companyDescription": CompanyDescription,
}

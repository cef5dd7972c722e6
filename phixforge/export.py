"""Word report for a single proposal.

Budget figures come from the same rollup the dashboard uses
(``work_package_subtotal`` / ``budget_rollup``) so the two never diverge.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH

from phixforge.analysis import (
    OVERHEAD_RATE, _as_bool_like, _as_float, _to_timestamp, budget_rollup, work_package_subtotal,
)
from phixforge.etl import lookup_by_id
from phixforge.models import Infrastructure, Person, Process, Proposal, Publication, as_proposal

logger = logging.getLogger(__name__)


@dataclass
class ReportLookups:
    """Reusable records referenced by one proposal, resolved by id."""

    processes: List[Process] = field(default_factory=list)
    publications: List[Publication] = field(default_factory=list)
    infrastructure: List[Infrastructure] = field(default_factory=list)
    people: List[Tuple[Person, str]] = field(default_factory=list)


def resolve_lookups(proposal, store) -> ReportLookups:
    p = as_proposal(proposal)
    processes = lookup_by_id(store, "processes")
    publications = lookup_by_id(store, "publications")
    infrastructure = lookup_by_id(store, "infrastructure")
    people = lookup_by_id(store, "people")

    # Dangling ids are skipped
    return ReportLookups(
        processes=[processes[i] for i in p.phix_processes if i in processes],
        publications=[publications[i] for i in p.publications if i in publications],
        infrastructure=[infrastructure[i] for i in p.infrastructure if i in infrastructure],
        people=[(people[sp.person_id], sp.role) for sp in p.selected_people if sp.person_id in people],
    )


def report_filename(proposal) -> str:
    return f"{as_proposal(proposal).acronym}_Proposal_Report.docx"


def _money(value: float) -> str:
    return f"€{value:,.2f}".replace(".00", "")


def _date(value) -> str:
    ts = _to_timestamp(value)
    return ts.strftime("%d/%m/%Y") if ts is not None else "N/A"


def _labelled(doc, label: str, value: str, indent: str = ""):
    p = doc.add_paragraph()
    p.add_run(f"{indent}{label}: ").bold = True
    p.add_run(value)
    return p


def build_proposal_document(proposal, lookups: Optional[ReportLookups] = None):
    p: Proposal = as_proposal(proposal)
    lookups = lookups or ReportLookups()
    granted = _as_bool_like(p.is_granted) is True
    doc = Document()

    title = doc.add_heading(f"{p.acronym} - Proposal Report", level=1)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER

    doc.add_heading("General Information", level=2)
    _labelled(doc, "Acronym", p.acronym)
    _labelled(doc, "Programme", p.programme)
    _labelled(doc, "Call", p.call)
    _labelled(doc, "Type", p.type)
    _labelled(doc, "Deadline", _date(p.deadline))
    _labelled(doc, "Status", "Granted" if granted else "Pending")
    _labelled(doc, "Funded Percentage", f"{_as_float(p.funded_percent):g}%")

    if granted and p.duration_months and p.start_date:
        doc.add_heading("Grant Details", level=2)
        _labelled(doc, "Duration", f"{p.duration_months} months")
        if p.extension_months:
            _labelled(doc, "Extension", f"{p.extension_months} months")
        _labelled(doc, "Start Date", _date(p.start_date))

    rollup = budget_rollup(p.work_packages)
    doc.add_heading("Budget Information", level=2)
    _labelled(doc, "Total Project Budget", _money(_as_float(p.total_budget)))
    _labelled(doc, "Total PHIX Budget", _money(rollup.phix_budget if p.work_packages else _as_float(p.phix_budget)))

    if p.work_packages:
        doc.add_heading("Work Packages & PHIX Budget Breakdown", level=2)
        for wp in p.work_packages:
            pm = _as_float(wp.phix_person_months)
            rate = _as_float(wp.person_month_rate)
            doc.add_heading(f"Work Package {wp.number}", level=3)
            _labelled(doc, "Lead Partner", wp.lead_partner or "N/A")
            _labelled(doc, "Description", wp.description or "N/A")
            doc.add_paragraph().add_run("PHIX Budget for this WP:").bold = True
            _labelled(doc, "• Person-Months", f"{pm:g} PM × {_money(rate)} = {_money(pm * rate)}", indent="  ")
            if wp.other_costs:
                doc.add_paragraph().add_run("  • Other Goods & Services:").bold = True
                for cost in wp.other_costs:
                    doc.add_paragraph(f"    - {cost.description}: {_money(_as_float(cost.value))}")
            if wp.travel_costs:
                doc.add_paragraph().add_run("  • Travel & Project Management:").bold = True
                for cost in wp.travel_costs:
                    doc.add_paragraph(f"    - {cost.description}: {_money(_as_float(cost.value))}")
            _labelled(doc, "Subtotal WP", _money(work_package_subtotal(wp)), indent="  ")

        _labelled(doc, "Total Direct Costs", _money(rollup.direct_costs))
        _labelled(doc, f"Overhead ({OVERHEAD_RATE:.0%})", _money(rollup.overhead))
        total = doc.add_paragraph()
        total.add_run("TOTAL PHIX BUDGET: ").bold = True
        total.add_run(_money(rollup.phix_budget)).bold = True

    doc.add_heading("Technical Details", level=2)
    _labelled(doc, "PIC Platform", p.pic_platform or "N/A")
    _labelled(doc, "Wavelengths", ", ".join(p.wavelengths) or "N/A")
    _labelled(doc, "PHIX Role", p.phix_role or "N/A")

    if p.partners:
        doc.add_heading("Partners", level=2)
        for idx, partner in enumerate(p.partners, start=1):
            para = doc.add_paragraph()
            para.add_run(f"{idx}. ").bold = True
            para.add_run(f"{partner.name} - {partner.country}")

    if lookups.people:
        doc.add_heading("Team Members", level=2)
        for person, role in lookups.people:
            para = doc.add_paragraph()
            para.add_run(person.full_name).bold = True
            para.add_run(f" - {role}")
            if person.position:
                para.add_run(f" ({person.position})")
            if person.email:
                para.add_run(f" - {person.email}")
            if person.career_stage:
                para.add_run(f" - {person.career_stage}")

    if p.phix_org_roles:
        doc.add_heading("PHIX Role in Project (as participating organization)", level=2)
        for role in p.phix_org_roles:
            doc.add_paragraph(role, style="List Bullet")

    for heading, records in (
        ("PHIX Processes", [(x.name, x.description) for x in lookups.processes]),
        ("Publications", [(x.title, x.metadata) for x in lookups.publications]),
        ("Infrastructure", [(x.name, x.description) for x in lookups.infrastructure]),
    ):
        if not records:
            continue
        doc.add_heading(heading, level=2)
        for name, text in records:
            doc.add_heading(name, level=3)
            doc.add_paragraph(text)

    return doc


def export_proposal_to_docx(proposal, store, target=None):
    """Write the report to ``target`` (path or binary file object); defaults to the report filename."""
    p = as_proposal(proposal)
    doc = build_proposal_document(p, resolve_lookups(p, store))
    target = target if target is not None else report_filename(p)
    doc.save(target)
    logger.info("Exported proposal %s report", p.acronym or p.id)
    return target

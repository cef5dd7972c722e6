from __future__ import annotations

from io import BytesIO

from docx import Document

from phixforge.etl import RecordStore
from phixforge.export import (
    build_proposal_document,
    export_proposal_to_docx,
    report_filename,
    resolve_lookups,
)

PROPOSAL = {
    "id": "p1",
    "acronym": "ALPHA",
    "programme": "Horizon",
    "deadline": "2024-03-05",
    "fundedPercent": 70,
    "isGranted": True,
    "startDate": "2024-06-01",
    "durationMonths": 36,
    "partners": [{"name": "Uni A", "country": "NL"}],
    "workPackages": [{
        "number": "1",
        "leadPartner": "PHIX",
        "phixPersonMonths": 10,
        "personMonthRate": 5000,
        "otherCosts": [{"description": "chips", "value": 2000}],
    }],
    "phixProcesses": ["proc-1", "gone"],
    "selectedPeople": [{"personId": "u1", "role": "PI"}, {"personId": "ghost", "role": "WP lead"}],
    "phixOrgRoles": ["Packaging"],
}


def _store() -> RecordStore:
    store = RecordStore()
    store.replace_all("processes", [{"id": "proc-1", "name": "Flip-chip", "description": "Die bonding"}])
    store.replace_all("people", [{"id": "u1", "firstName": "Ada", "lastName": "Lovelace", "email": "ada@phix.test"}])
    return store


def _texts(doc) -> list:
    return [para.text for para in doc.paragraphs]


def test_resolve_lookups_skips_dangling_ids() -> None:
    lookups = resolve_lookups(PROPOSAL, _store())
    assert [p.name for p in lookups.processes] == ["Flip-chip"]
    assert [(person.full_name, role) for person, role in lookups.people] == [("Ada Lovelace", "PI")]
    assert lookups.publications == []


def test_document_budget_matches_rollup() -> None:
    texts = _texts(build_proposal_document(PROPOSAL, resolve_lookups(PROPOSAL, _store())))
    assert texts[0] == "ALPHA - Proposal Report"
    assert "  Subtotal WP: €52,000" in texts
    assert "Total Direct Costs: €52,000" in texts
    assert "Overhead (25%): €13,000" in texts
    assert "TOTAL PHIX BUDGET: €65,000" in texts
    assert "Total PHIX Budget: €65,000" in texts


def test_document_sections() -> None:
    texts = _texts(build_proposal_document(PROPOSAL, resolve_lookups(PROPOSAL, _store())))
    assert "Grant Details" in texts
    assert "Start Date: 01/06/2024" in texts
    assert "Deadline: 05/03/2024" in texts
    assert "1. Uni A - NL" in texts
    assert "Ada Lovelace - PI - ada@phix.test" in texts
    assert "Packaging" in texts
    assert "Flip-chip" in texts


def test_document_without_work_packages_uses_stored_budget() -> None:
    texts = _texts(build_proposal_document({"acronym": "BETA", "phixBudget": 40000, "deadline": "junk"}))
    assert "Total PHIX Budget: €40,000" in texts
    assert "Deadline: N/A" in texts
    assert "Grant Details" not in texts
    assert not any(t.startswith("TOTAL PHIX BUDGET") for t in texts)


def test_report_filename() -> None:
    assert report_filename(PROPOSAL) == "ALPHA_Proposal_Report.docx"


def test_export_writes_docx(tmp_path) -> None:
    target = tmp_path / report_filename(PROPOSAL)
    export_proposal_to_docx(PROPOSAL, _store(), str(target))
    assert target.exists()
    assert "TOTAL PHIX BUDGET: €65,000" in _texts(Document(str(target)))


def test_export_to_buffer() -> None:
    buf = BytesIO()
    export_proposal_to_docx(PROPOSAL, _store(), buf)
    assert buf.getvalue()[:2] == b"PK"


def test_string_false_grant_flag_reads_pending() -> None:
    record = dict(PROPOSAL, isGranted="false")
    texts = _texts(build_proposal_document(record))
    assert "Status: Pending" in texts
    assert "Grant Details" not in texts

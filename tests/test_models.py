from __future__ import annotations

from phixforge.models import Person, Project, Proposal, WorkPackage, as_proposal


def test_proposal_from_dict_builds_nested_records() -> None:
    p = Proposal.from_dict({
        "id": "p1",
        "acronym": "ALPHA",
        "isGranted": True,
        "partners": [{"name": "Uni A", "country": "NL"}],
        "selectedPeople": [{"personId": "u1", "role": "PI"}],
        "workPackages": [{"number": "1", "travelCosts": [{"description": "trip", "value": 300}]}],
    })
    assert p.is_granted is True
    assert p.partners[0].country == "NL"
    assert p.selected_people[0].person_id == "u1"
    assert isinstance(p.work_packages[0], WorkPackage)
    assert p.work_packages[0].travel_costs[0].value == 300


def test_defaults_for_missing_and_null_keys() -> None:
    p = Proposal.from_dict({"fundedPercent": None, "workPackages": None})
    assert p.funded_percent == 100.0
    assert p.work_packages == []
    assert p.extension_months == 0


def test_unknown_keys_survive_round_trip() -> None:
    data = {"id": "p1", "acronym": "ALPHA", "legacyNotes": "keep me"}
    p = Proposal.from_dict(data)
    assert p.extra == {"legacyNotes": "keep me"}
    out = p.to_dict()
    assert out["legacyNotes"] == "keep me"
    assert out["acronym"] == "ALPHA"


def test_to_dict_uses_stored_key_names() -> None:
    out = Proposal(id="p1", phix_budget=10.0, is_granted=True).to_dict()
    assert out["phixBudget"] == 10.0
    assert out["isGranted"] is True
    assert "phix_budget" not in out
    assert out["workPackages"] == []


def test_person_full_name_skips_blanks() -> None:
    assert Person(first_name="Ada", last_name="Lovelace").full_name == "Ada Lovelace"
    assert Person.from_dict({"title": "Prof", "lastName": "Curie"}).full_name == "Prof Curie"


def test_project_status_defaults_to_ongoing() -> None:
    assert Project.from_dict({"name": "X"}).status == "Ongoing"


def test_as_proposal_passes_instances_through() -> None:
    p = Proposal(id="p1")
    assert as_proposal(p) is p
    assert as_proposal({"id": "p2"}).id == "p2"

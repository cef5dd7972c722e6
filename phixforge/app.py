"""
PHIXForge Proposal Dashboard
============================
Streamlit app for managing grant proposals and their reusable reference data.

Structure:
1. Statistics: portfolio KPIs, rankings, programme success, yearly trend
2. Proposals: search, create/edit, delete, Word report
3. Granted Projects: timeline and progress of granted proposals
4. Reusable Data: processes, publications, people, organisations, ...
5. Backup: JSON export / import of every collection
"""

import logging
import os
from datetime import date
from io import BytesIO

import altair as alt
import pandas as pd
import streamlit as st
from dotenv import load_dotenv

from phixforge.analysis import (
    DEFAULT_PROGRAMMES, METRIC_DEFINITIONS, STATUS_ACTIVE,
    budget_rollup, clean_and_parse, compute_statistics, generate_headlines,
    get_available_programmes, get_available_years, work_package_breakdown,
)
from phixforge.editors import (
    CONTACT_COLUMNS, collect_contacts, collect_departments, collect_selected_people,
    collect_work_packages, contacts_frame, departments_frame, person_labels,
    selected_people_frame, work_package_frames,
)
from phixforge.etl import RecordStore, default_data_path, new_id
from phixforge.export import build_proposal_document, report_filename, resolve_lookups
from phixforge.models import Proposal

load_dotenv()

logging.basicConfig(
    level=os.getenv("PHIXFORGE_LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# =============================================================================
# PAGE CONFIGURATION
# =============================================================================

st.set_page_config(
    page_title="PHIXForge Proposals",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded"
)

# Reusable-data collections edited as flat tables; personnel records have their own form
REUSABLE_COLUMNS = {
    "processes": ["id", "name", "description"],
    "publications": ["id", "title", "metadata"],
    "infrastructure": ["id", "name", "description"],
    "people": ["id", "title", "firstName", "lastName", "email", "position", "gender", "nationality", "careerStage"],
    "organizations": ["id", "legalName", "shortName", "picNumber"],
    "projects": ["id", "name", "call", "website", "shortDescription", "status"],
    "exploitation": ["id", "name", "description", "targetedEndUsers", "competitors", "marketOverview",
                     "valueProposition", "commercializationMeasures", "additionalSupport", "expectedRevenues"],
    "companyDescription": ["id", "description"],
}

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fmt_currency(val):
    if pd.isna(val) or val == 0:
        return "€0"
    if abs(val) >= 1_000_000:
        return f"€{val/1_000_000:,.2f}M"
    if abs(val) >= 1_000:
        return f"€{val/1_000:,.0f}K"
    return f"€{val:,.0f}"

def fmt_pct(val):
    if pd.isna(val):
        return "N/A"
    return f"{val:.1f}%"

def _label(record):
    name = record.get("name") or record.get("title") or record.get("legalName") or " ".join(
        x for x in (record.get("firstName"), record.get("lastName")) if x
    )
    if not name and isinstance(record.get("mainContact"), dict):
        contact = record["mainContact"]
        name = f"{contact.get('firstName', '')} {contact.get('lastName', '')}".strip()
    return name or (record.get("description") or "")[:40] or record.get("id", "")

def _options(store, collection):
    return {r["id"]: _label(r) for r in store.get_all(collection)}

def _parse_date(value):
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None

def _bar(data, y, x="Count", title="", color="#1e88e5"):
    return alt.Chart(data).mark_bar(color=color).encode(
        x=alt.X(f"{x}:Q", title=title or x),
        y=alt.Y(f"{y}:N", sort="-x", title=""),
        tooltip=[y, x],
    ).properties(height=max(200, len(data) * 28))


# =============================================================================
# DATA LOADING (CACHED)
# =============================================================================

@st.cache_resource
def get_store(path):
    """One record store per data file for the whole session."""
    return RecordStore(path)


def persist(store):
    try:
        store.save()
    except (OSError, ValueError) as e:
        logger.exception("Saving failed")
        st.error(f"Could not save data: {e}")


# =============================================================================
# SECTION: STATISTICS
# =============================================================================

def render_statistics(store):
    st.header("📈 Statistics Dashboard")

    proposals = store.get_all("proposals")
    df_all, parse_rep = clean_and_parse(proposals)
    for note in parse_rep.notes:
        st.sidebar.caption(f"ℹ️ {note}")

    st.sidebar.header("🎛️ Filters")
    years = get_available_years(df_all)
    selected_year = st.sidebar.selectbox("Year (deadline)", ["All Years"] + years)
    programmes = get_available_programmes(df_all)
    selected_prog = st.sidebar.selectbox("Programme", ["All Programmes"] + programmes)

    stats = compute_statistics(
        proposals,
        year=None if selected_year == "All Years" else int(selected_year),
        programme=None if selected_prog == "All Programmes" else selected_prog,
        process_names=_options(store, "processes"),
    )
    metrics = stats["summary"]

    if metrics["total_proposals"] == 0:
        st.warning("No proposals for the selected filters.")

    # -------------------------------------------------------------------------
    # KPIs
    # -------------------------------------------------------------------------
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total Proposals", f"{metrics['total_proposals']:,}")
    c2.metric("Granted Proposals", f"{metrics['granted_proposals']:,}",
              delta=f"{metrics['success_rate']:.1f}% success rate", delta_color="off")
    c3.metric("Total PHIX Budget", fmt_currency(metrics["total_budget"]))
    c4.metric("PHIX Co-Funding", fmt_currency(metrics["co_funding"]))

    for line in generate_headlines(metrics):
        st.markdown(f"- {line}")

    tab_overview, tab_tech, tab_partners, tab_trends = st.tabs(
        ["Overview", "Processes & Technologies", "Partners & Geography", "Trends"]
    )

    with tab_overview:
        col1, col2 = st.columns(2)
        with col1:
            st.subheader("Project Status")
            st.metric("Ongoing Projects", metrics["active_projects"])
            st.metric("Completed Projects", metrics["completed_projects"])
        with col2:
            st.subheader("Success Metrics")
            st.metric("Success Rate", fmt_pct(metrics["success_rate"]))
            st.metric("Average PHIX Budget", fmt_currency(metrics["avg_budget"]))

        st.subheader("Programme Success Rates (all proposals)")
        prog = stats["programmes"]
        if len(prog) > 0:
            prog_long = prog.melt(id_vars=["Programme", "Rate_Pct"], value_vars=["Granted", "Total"],
                                  var_name="Type", value_name="Proposals")
            chart = alt.Chart(prog_long).mark_bar().encode(
                x=alt.X("Programme:N", title="", sort=prog["Programme"].tolist()),
                y=alt.Y("Proposals:Q"),
                color=alt.Color("Type:N", scale=alt.Scale(domain=["Granted", "Total"], range=["#43a047", "#b0bec5"])),
                xOffset="Type:N",
                tooltip=["Programme", "Type", "Proposals", alt.Tooltip("Rate_Pct:Q", format=".1f", title="Rate %")],
            ).properties(height=300)
            st.altair_chart(chart, use_container_width=True)
        else:
            st.info("No programmes recorded yet.")

    with tab_tech:
        col1, col2 = st.columns(2)
        with col1:
            st.subheader("Top 5 PHIX Processes")
            if len(stats["top_processes"]) > 0:
                st.altair_chart(_bar(stats["top_processes"], "Name"), use_container_width=True)
        with col2:
            st.subheader("Wavelengths Distribution")
            wl = stats["wavelengths"]
            if len(wl) > 0:
                pie = alt.Chart(wl).mark_arc().encode(
                    theta="Count:Q", color=alt.Color("Name:N", title="Wavelength"), tooltip=["Name", "Count"],
                )
                st.altair_chart(pie, use_container_width=True)
        st.subheader("Applications by Area")
        if len(stats["applications"]) > 0:
            st.altair_chart(_bar(stats["applications"], "Name", color="#8e24aa"), use_container_width=True)

    with tab_partners:
        col1, col2 = st.columns(2)
        with col1:
            st.subheader("Top 10 Partners")
            if len(stats["top_partners"]) > 0:
                st.altair_chart(_bar(stats["top_partners"], "Name", color="#fb8c00"), use_container_width=True)
        with col2:
            st.subheader("Partner Countries")
            if len(stats["partner_countries"]) > 0:
                st.altair_chart(_bar(stats["partner_countries"], "Name", color="#00897b"), use_container_width=True)

    with tab_trends:
        st.subheader("Proposals Over Time (all proposals)")
        trend = stats["temporal"]
        if len(trend) > 0:
            trend_long = trend.melt(id_vars=["Year"], var_name="Type", value_name="Proposals")
            chart = alt.Chart(trend_long).mark_bar().encode(
                x=alt.X("Year:O"),
                y=alt.Y("Proposals:Q"),
                color=alt.Color("Type:N", scale=alt.Scale(domain=["Submitted", "Granted"], range=["#b0bec5", "#1e88e5"])),
                xOffset="Type:N",
                tooltip=["Year", "Type", "Proposals"],
            ).properties(height=350)
            st.altair_chart(chart, use_container_width=True)

    with st.expander("📖 Metric definitions", expanded=False):
        defs = pd.DataFrame(METRIC_DEFINITIONS.values())
        st.dataframe(defs, use_container_width=True, hide_index=True)


# =============================================================================
# SECTION: PROPOSALS
# =============================================================================

def render_proposal_form(store, proposal):
    custom = store.get_all("customProgrammes")
    programme_choices = DEFAULT_PROGRAMMES + [p for p in custom if p not in DEFAULT_PROGRAMMES]
    if proposal.programme and proposal.programme not in programme_choices:
        programme_choices.append(proposal.programme)

    key = proposal.id or "new"
    with st.form(f"proposal_form_{key}"):
        st.subheader("General Information")
        c1, c2, c3 = st.columns(3)
        acronym = c1.text_input("Acronym", proposal.acronym)
        programme = c2.selectbox(
            "Programme", programme_choices,
            index=programme_choices.index(proposal.programme) if proposal.programme in programme_choices else 0,
        )
        new_programme = c3.text_input("…or add a programme", "")
        c1, c2, c3 = st.columns(3)
        call = c1.text_input("Call", proposal.call)
        ptype = c2.text_input("Type", proposal.type)
        deadline = c3.date_input("Deadline", _parse_date(proposal.deadline))

        st.subheader("Budget")
        c1, c2 = st.columns(2)
        funded = c1.number_input("Funded %", 0.0, 100.0, float(proposal.funded_percent or 0), step=5.0)
        total_budget = c2.number_input("Total project budget (€)", 0.0, value=float(proposal.total_budget or 0), step=1000.0)

        st.subheader("Grant")
        c1, c2, c3, c4, c5 = st.columns(5)
        granted = c1.checkbox("Granted", bool(proposal.is_granted))
        completed = c2.checkbox("Completed", bool(proposal.is_completed))
        start = c3.date_input("Start date", _parse_date(proposal.start_date))
        duration = c4.number_input("Duration (months)", 0, value=int(proposal.duration_months or 0))
        extension = c5.number_input("Extension (months)", 0, value=int(proposal.extension_months or 0))

        st.subheader("Technical Details")
        c1, c2, c3 = st.columns(3)
        application = c1.text_input("Application area", proposal.project_application)
        platform = c2.text_input("PIC platform", proposal.pic_platform)
        role = c3.text_input("PHIX role", proposal.phix_role)
        wavelengths = st.text_input("Wavelengths (comma separated)", ", ".join(proposal.wavelengths))
        org_roles = st.text_input("PHIX roles as participating organisation (comma separated)",
                                  ", ".join(proposal.phix_org_roles))

        st.subheader("Partners")
        partners = st.data_editor(
            pd.DataFrame([x.to_dict() for x in proposal.partners], columns=["name", "country"]),
            num_rows="dynamic", use_container_width=True, key=f"partners_{key}",
        )

        st.subheader("Work Packages")
        wps, costs = work_package_frames(proposal)
        wps = st.data_editor(wps, num_rows="dynamic", use_container_width=True, key=f"wps_{key}")
        st.caption("Cost items: reference the work package number; kind is Other or Travel.")
        costs = st.data_editor(
            costs, num_rows="dynamic", use_container_width=True, key=f"costs_{key}",
            column_config={"kind": st.column_config.SelectboxColumn("kind", options=["Other", "Travel"])},
        )

        st.subheader("Reusable Data")
        selections = {}
        for field_name, collection, label in (
            ("phixProcesses", "processes", "PHIX processes"),
            ("publications", "publications", "Publications"),
            ("infrastructure", "infrastructure", "Infrastructure"),
            ("organizations", "organizations", "Organisations"),
            ("personnelInvolvement", "personnelInvolvement", "Personnel involvement"),
            ("exploitation", "exploitation", "Exploitation"),
            ("companyDescription", "companyDescription", "Company description"),
            ("relatedProjects", "projects", "Related projects"),
        ):
            opts = _options(store, collection)
            current = [i for i in proposal.to_dict().get(field_name, []) if i in opts]
            selections[field_name] = st.multiselect(label, list(opts), default=current, format_func=opts.get)

        people = person_labels(store.get_all("people"))
        selected_people = st.data_editor(
            selected_people_frame(proposal.selected_people, people),
            num_rows="dynamic", use_container_width=True, key=f"people_{key}",
            column_config={"person": st.column_config.SelectboxColumn("person", options=list(people.values()))},
        )

        submitted = st.form_submit_button("💾 Save proposal")

    if not submitted:
        return

    work_packages, dropped = collect_work_packages(wps, costs, proposal.work_packages)
    if dropped:
        st.error(
            f"{dropped} work package or cost row(s) have no matching work package number. "
            "Fill in the number or clear the row."
        )
        return

    if new_programme.strip():
        programme = new_programme.strip()

    record = proposal.to_dict()
    record.update({
        "id": proposal.id or new_id(),
        "acronym": acronym.strip(),
        "programme": programme,
        "call": call.strip(),
        "type": ptype.strip(),
        "deadline": deadline.isoformat() if deadline else None,
        "fundedPercent": funded,
        "totalBudget": total_budget,
        "isGranted": granted,
        "isCompleted": completed if granted else False,
        "startDate": start.isoformat() if granted and start else None,
        "durationMonths": int(duration) if granted and duration else None,
        "extensionMonths": int(extension) if granted else 0,
        "projectApplication": application.strip(),
        "picPlatform": platform.strip(),
        "phixRole": role.strip(),
        "wavelengths": [w.strip() for w in wavelengths.split(",") if w.strip()],
        "phixOrgRoles": [r.strip() for r in org_roles.split(",") if r.strip()],
        "partners": [p for p in partners.fillna("").to_dict("records") if p.get("name")],
        "workPackages": work_packages,
        "phixBudget": budget_rollup(work_packages).phix_budget if work_packages else float(proposal.phix_budget or 0),
        "selectedPeople": collect_selected_people(selected_people, people),
        **selections,
    })

    if not record["acronym"] or not record["call"]:
        st.error("Acronym and call are required.")
        return

    if new_programme.strip() and programme not in custom and programme not in DEFAULT_PROGRAMMES:
        store.replace_all("customProgrammes", custom + [programme])
    store.upsert("proposals", record)
    persist(store)
    st.success("Proposal saved")
    st.rerun()

def render_proposals(store):
    st.header("📋 Proposals")

    records = store.get_all("proposals")
    search = st.text_input("Search proposals", "").lower()
    shown = [
        r for r in records
        if search in (r.get("acronym") or "").lower()
        or search in (r.get("call") or "").lower()
        or search in (r.get("programme") or "").lower()
    ]

    df, _ = clean_and_parse(shown)
    if len(df) > 0:
        disp = df[["Acronym", "Call", "Programme", "Type", "Deadline", "Funded_Pct",
                   "Total_Budget", "Phix_Budget", "Status"]].copy()
        disp.columns = ["Acronym", "Call", "Programme", "Type", "Deadline", "Funded %",
                        "Total €", "PHIX €", "Status"]
        st.dataframe(disp.style.format({
            "Funded %": "{:.0f}%", "Total €": "€{:,.0f}", "PHIX €": "€{:,.0f}",
            "Deadline": lambda d: d.strftime("%d/%m/%Y") if pd.notna(d) else "",
        }), use_container_width=True, hide_index=True)
    else:
        st.info("No proposals found")

    choices = {"": "➕ New proposal"}
    choices.update({r["id"]: f"{r.get('acronym', '')} - {r.get('call', '')}" for r in shown})
    selected = st.selectbox("Edit proposal", list(choices), format_func=choices.get)
    proposal = Proposal.from_dict(store.find("proposals", selected)) if selected else Proposal()

    if selected:
        rollup = budget_rollup(proposal.work_packages)
        c1, c2, c3 = st.columns(3)
        c1.metric("Direct Costs", fmt_currency(rollup.direct_costs))
        c2.metric("Overhead (25%)", fmt_currency(rollup.overhead))
        c3.metric("PHIX Budget", fmt_currency(rollup.phix_budget))
        breakdown = work_package_breakdown(proposal.work_packages)
        if len(breakdown) > 0:
            st.dataframe(breakdown.style.format({
                "Person_Month_Rate": "€{:,.0f}", "Person_Month_Cost": "€{:,.0f}",
                "Other_Costs": "€{:,.0f}", "Travel_Costs": "€{:,.0f}", "Subtotal": "€{:,.0f}",
            }), use_container_width=True, hide_index=True)

        c1, c2 = st.columns(2)
        buffer = BytesIO()
        build_proposal_document(proposal, resolve_lookups(proposal, store)).save(buffer)
        c1.download_button(
            "📄 Export to Word", buffer.getvalue(), file_name=report_filename(proposal),
            mime="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        )
        if c2.button("🗑️ Delete proposal"):
            store.delete("proposals", proposal.id)
            persist(store)
            st.rerun()

    render_proposal_form(store, proposal)


# =============================================================================
# SECTION: GRANTED PROJECTS
# =============================================================================

def render_projects(store):
    st.header("🚀 Granted Projects")
    df, _ = clean_and_parse(store.get_all("proposals"))
    granted = df.loc[df["Is_Granted"]].copy()
    if len(granted) == 0:
        st.info("No granted projects yet")
        return

    granted = granted.sort_values(["Status", "End_Date"])
    disp = granted[["Acronym", "Programme", "Start_Date", "End_Date", "Duration_Months",
                    "Extension_Months", "Progress_Pct", "Months_Remaining", "Status", "Phix_Budget"]].copy()
    st.dataframe(
        disp,
        use_container_width=True, hide_index=True,
        column_config={
            "Progress_Pct": st.column_config.ProgressColumn("Progress", min_value=0, max_value=100, format="%.0f%%"),
            "Phix_Budget": st.column_config.NumberColumn("PHIX €", format="€%.0f"),
        },
    )
    active = granted.loc[granted["Status"] == STATUS_ACTIVE]
    st.caption(f"{len(active)} active of {len(granted)} granted projects")


# =============================================================================
# SECTION: REUSABLE DATA
# =============================================================================

def render_departments(store):
    st.markdown("**Departments carrying out the proposed work**")
    organizations = store.get_all("organizations")
    if not organizations:
        st.caption("Add an organisation above first.")
        return
    labels = {r["id"]: _label(r) for r in organizations}
    selected = st.selectbox("Organisation", list(labels), format_func=labels.get, key="departments_org")
    record = next(r for r in organizations if r["id"] == selected)
    edited = st.data_editor(
        departments_frame(record.get("departments")),
        num_rows="dynamic", use_container_width=True, key=f"departments_{selected}",
    )
    if st.button("💾 Save departments", key=f"save_departments_{selected}"):
        record["departments"] = collect_departments(edited)
        store.upsert("organizations", record)
        persist(store)
        st.success(f"Saved {len(record['departments'])} department(s)")


def render_personnel(store):
    records = store.get_all("personnelInvolvement")
    choices = {"": "➕ New personnel record"}
    choices.update({r["id"]: _label(r) for r in records})
    selected = st.selectbox("Personnel record", list(choices), format_func=choices.get, key="personnel_pick")
    record = next((r for r in records if r["id"] == selected), {}) if selected else {}
    main = record.get("mainContact") or {}

    key = selected or "new"
    with st.form(f"personnel_form_{key}"):
        st.markdown("**Main contact**")
        values = {}
        for start in range(0, len(CONTACT_COLUMNS), 4):
            cols = st.columns(4)
            for col, field_name in zip(cols, CONTACT_COLUMNS[start:start + 4]):
                values[field_name] = col.text_input(field_name, main.get(field_name) or "", key=f"{key}_{field_name}")
        st.markdown("**Other contacts**")
        others = st.data_editor(
            contacts_frame(record.get("otherContacts")),
            num_rows="dynamic", use_container_width=True, key=f"contacts_{key}",
        )
        submitted = st.form_submit_button("💾 Save personnel record")

    if submitted:
        main_contact = {k: v.strip() for k, v in values.items()}
        if not main_contact["firstName"] or not main_contact["lastName"]:
            st.error("Main contact first and last name are required.")
        else:
            updated = dict(record)
            updated.update({
                "id": selected or new_id(),
                "mainContact": main_contact,
                "otherContacts": collect_contacts(others),
            })
            store.upsert("personnelInvolvement", updated)
            persist(store)
            st.success("Personnel record saved")
            st.rerun()

    if selected and st.button("🗑️ Delete personnel record", key=f"delete_personnel_{selected}"):
        store.delete("personnelInvolvement", selected)
        persist(store)
        st.rerun()


def render_reusable(store):
    st.header("🗂️ Reusable Data")
    tabs = st.tabs([c for c in REUSABLE_COLUMNS] + ["personnelInvolvement"])
    for tab, (collection, columns) in zip(tabs, REUSABLE_COLUMNS.items()):
        with tab:
            records = store.get_all(collection)
            editable = [c for c in columns if c != "id"]
            df = pd.DataFrame(records, columns=columns)
            edited = st.data_editor(
                df, num_rows="dynamic", use_container_width=True, key=f"editor_{collection}",
                disabled=["id"],
            )
            if st.button("💾 Save", key=f"save_{collection}"):
                by_id = {r["id"]: r for r in records}
                updated = []
                for row in edited.fillna("").to_dict("records"):
                    if not any(str(row.get(c) or "").strip() for c in editable):
                        continue
                    record = dict(by_id.get(row.get("id"), {}))
                    record.update(row)
                    record["id"] = row.get("id") or new_id()
                    updated.append(record)
                store.replace_all(collection, updated)
                persist(store)
                st.success(f"Saved {len(updated)} {collection} record(s)")
            if collection == "organizations":
                render_departments(store)
    with tabs[-1]:
        render_personnel(store)


# =============================================================================
# SECTION: BACKUP
# =============================================================================

def render_backup(store):
    st.header("💾 Backup")
    st.download_button("⬇️ Export all data (JSON)", store.export_all(),
                       file_name="phixforge_backup.json", mime="application/json")

    uploaded = st.file_uploader("Import backup", type=["json"])
    if uploaded and st.button("⬆️ Import"):
        try:
            imported = store.import_all(uploaded.getvalue().decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            st.error(f"Import failed: {e}")
            return
        persist(store)
        st.success(f"Imported: {', '.join(imported) or 'nothing'}")


# =============================================================================
# MAIN APPLICATION
# =============================================================================

def main():
    st.title("📊 PHIXForge")
    st.markdown("*Grant proposals, granted projects and reusable data, stored locally*")

    st.sidebar.header("📁 Data Source")
    data_path = default_data_path()
    try:
        store = get_store(str(data_path))
    except (OSError, ValueError) as e:
        st.error(f"Error: {e}")
        st.stop()
    st.sidebar.success(f"✅ {len(store.get_all('proposals')):,} proposals in {data_path}")

    page = st.sidebar.radio(
        "Section", ["Statistics", "Proposals", "Granted Projects", "Reusable Data", "Backup"]
    )
    if page == "Statistics":
        render_statistics(store)
    elif page == "Proposals":
        render_proposals(store)
    elif page == "Granted Projects":
        render_projects(store)
    elif page == "Reusable Data":
        render_reusable(store)
    else:
        render_backup(store)

    st.markdown("---")
    st.caption("**PHIXForge** | Budget = Direct Costs × 1.25 | Built with Streamlit")


if __name__ == "__main__":
    main()

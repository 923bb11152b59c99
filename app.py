# -----------------------------------------------
# 🚑 Schichttagebuch (Streamlit)
# -----------------------------------------------
# Benötigt: streamlit, sqlmodel, reportlab, pandas, psycopg2-binary (für Postgres)
# Speicher: SQL (SQLite/Postgres, pro Benutzer) oder lokales JSON-Dokument (STORAGE_BACKEND=local).

import logging
from datetime import date, time

import streamlit as st

from config import AppConfig, configure_logging
from domain import AttributeFilters, ReportData, Shift
from report import build_filename, export_pdf
from repository import RepositoryError, init_database, open_repositories
from services import (
    INVALID_RANGE_LABEL,
    ShiftAnalyzer,
    calculate_duration,
    code_for,
    exceeds_code_hours,
    group_by_month,
    shift_reference,
)
from utils import (
    chart_dataframe,
    distribution_dataframe,
    format_date_de,
    format_hours,
    format_hours_signed,
    shifts_to_dataframe,
)

CONFIG = AppConfig.from_env()
configure_logging(CONFIG.log_level)
logger = logging.getLogger("schichttagebuch")

APP_TITLE = "Schichttagebuch"
MODES = {"Monat": "month", "Jahr": "year", "Zeitraum": "custom"}
PAGES = ["Journal", "Neue Schicht", "Auswertung", "Einstellungen"]

st.set_page_config(page_title=APP_TITLE, page_icon="🚑", layout="centered")


@st.cache_resource
def get_engine(url: str):
    return init_database(url)


def _flash_success_if_any():
    msg = st.session_state.pop("_flash_success", None)
    if msg:
        st.success(msg)


def _run_write(action, success_msg: str) -> bool:
    """Runs a repository write; I/O errors are shown, not retried."""
    try:
        action()
    except RepositoryError as e:
        logger.error("Write failed: %s", e)
        st.error(f"Speichern fehlgeschlagen: {e}")
        return False
    st.session_state["_flash_success"] = success_msg
    return True


# =========================
# Anmeldung (current user id or none)
# =========================
def current_user() -> str | None:
    if CONFIG.storage_backend == "local":
        return CONFIG.default_user or "lokal"
    return st.session_state.get("user_id")


st.sidebar.markdown(f"### 🚑 {APP_TITLE}")
if CONFIG.storage_backend != "local":
    if st.session_state.get("user_id"):
        st.sidebar.caption(f"Angemeldet als **{st.session_state['user_id']}**")
        if st.sidebar.button("Abmelden"):
            st.session_state.pop("user_id")
            st.rerun()
    else:
        with st.sidebar.form("login"):
            name = st.text_input("Benutzer", value=CONFIG.default_user)
            if st.form_submit_button("Anmelden") and name.strip():
                st.session_state["user_id"] = name.strip()
                st.rerun()

user_id = current_user()
if not user_id:
    st.title(APP_TITLE)
    st.info("Bitte in der Seitenleiste anmelden.")
    st.stop()

try:
    engine = None if CONFIG.storage_backend == "local" else get_engine(CONFIG.database_url)
    shift_repo, settings_repo = open_repositories(CONFIG, user_id, engine=engine)
    shifts = shift_repo.list()
    settings = settings_repo.get()
except RepositoryError as e:
    st.error(f"Daten konnten nicht geladen werden: {e}")
    st.stop()

page = st.sidebar.radio("Navigation", PAGES, label_visibility="collapsed")
_flash_success_if_any()


# =========================
# 📖 Journal
# =========================
def page_journal():
    st.header("Journal")
    if not shifts:
        st.info("Keine Einträge vorhanden. Starte mit „Neue Schicht“.")
        return
    for month, items in group_by_month(shifts):
        st.subheader(month)
        for s in items:
            dur = calculate_duration(s.start_time, s.end_time)
            code = code_for(s, settings)
            badge = "🟢" if exceeds_code_hours(s, settings) else "⚪"
            cols = st.columns([5, 1])
            cols[0].markdown(
                f"**{format_date_de(s.date) or s.date}** · {code.code if code else '?'} | {s.call_sign or '-'}  \n"
                f"🕒 {s.start_time} - {s.end_time} · 📍 {s.station or '-'} · {badge} {dur:.2f}h"
            )
            if cols[1].button("🗑️", key=f"del_{s.id}", help="Löschen"):
                if _run_write(lambda: shift_repo.remove(s.id), "Schicht gelöscht."):
                    st.rerun()


# =========================
# ➕ Neue Schicht
# =========================
def _options(values: list[str]) -> list[str]:
    return values or [""]


def page_entry():
    st.header("Neue Schicht")
    types = {t.id: t.name for t in settings.shift_types}
    codes = {c.id: f"{c.code} ({c.hours:g}h)" for c in settings.shift_codes}
    with st.form("neue_schicht", clear_on_submit=True):
        st.markdown("**Zeitraum**")
        shift_date = st.date_input("Datum", value=date.today(), format="DD.MM.YYYY")
        c1, c2 = st.columns(2)
        start = c1.time_input("Beginn", value=time(7, 0), step=300)
        end = c2.time_input("Ende", value=time(19, 0), step=300)

        st.markdown("**Details**")
        c3, c4 = st.columns(2)
        type_id = c3.selectbox("Schichtart", list(types) or [None], format_func=lambda k: types.get(k, "-"))
        code_id = c4.selectbox("Kürzel (Soll)", list(codes) or [None], format_func=lambda k: codes.get(k, "-"))
        station = st.selectbox("Wache", _options(settings.stations))

        st.markdown("**Ressourcen**")
        partner = st.text_input("TeampartnerIn", placeholder="Name eingeben")
        c5, c6 = st.columns(2)
        vehicle = c5.selectbox("Kennzeichen", _options(settings.vehicles))
        call_sign = c6.selectbox("Funkrufname", _options(settings.call_signs))

        if st.form_submit_button("Schicht speichern", use_container_width=True):
            shift = Shift.new(
                date=shift_date.isoformat(),
                start_time=start.strftime("%H:%M"),
                end_time=end.strftime("%H:%M"),
                type_id=type_id, code_id=code_id,
                station=station, vehicle=vehicle, call_sign=call_sign,
                partner=partner.strip(),
            )
            dur = calculate_duration(shift.start_time, shift.end_time)
            if _run_write(lambda: shift_repo.add(shift), f"Gespeichert {format_date_de(shift.date)}: {format_hours(dur)}"):
                st.rerun()


# =========================
# 📊 Auswertung
# =========================
def page_analysis():
    st.header("Auswertung")
    analyzer = ShiftAnalyzer(CONFIG.weekly_target_hours)

    mode = MODES[st.radio("Zeitraum", list(MODES), horizontal=True, label_visibility="collapsed")]
    ref = st.session_state.setdefault("ref_date", date.today())
    custom_start = custom_end = None
    if mode == "custom":
        c1, c2 = st.columns(2)
        custom_start = c1.date_input("Von", value=None, format="DD.MM.YYYY")
        custom_end = c2.date_input("Bis", value=None, format="DD.MM.YYYY")
    else:
        prev, _, nxt = st.columns([1, 4, 1])
        if prev.button("◀", use_container_width=True):
            st.session_state["ref_date"] = shift_reference(ref, mode, -1)
            st.rerun()
        if nxt.button("▶", use_container_width=True):
            st.session_state["ref_date"] = shift_reference(ref, mode, 1)
            st.rerun()

    with st.expander("Filter"):
        types = {t.id: t.name for t in settings.shift_types}
        sel_types = st.multiselect("Schichtart", list(types), format_func=lambda k: types[k])
        sel_stations = st.multiselect("Wache", settings.stations)
        sel_vehicles = st.multiselect("Fahrzeug", settings.vehicles)
    filters = AttributeFilters.of(sel_types, sel_stations, sel_vehicles)

    result = analyzer.analyze(shifts, settings, mode, ref, custom_start, custom_end, filters)
    rng, stats = result.date_range, result.stats

    st.subheader(rng.label)
    if rng.invalid:
        st.warning(INVALID_RANGE_LABEL)
        return

    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Ist", format_hours(stats.actual_hours))
    m2.metric("Soll", format_hours(stats.target_hours))
    m3.metric("Saldo", format_hours_signed(stats.delta))
    m4.metric("Schichten", stats.shift_count)

    if not result.shifts:
        st.info("Keine Schichten im gewählten Zeitraum.")
        return

    st.markdown("**Stunden pro Tag**")
    st.bar_chart(chart_dataframe(stats), x="Tag", y="Stunden")
    st.markdown("**Verteilung nach Schichtart**")
    st.dataframe(distribution_dataframe(stats), hide_index=True, use_container_width=True)
    st.markdown("**Schichten**")
    st.dataframe(shifts_to_dataframe(sorted(result.shifts, key=lambda s: s.date), settings),
                 hide_index=True, use_container_width=True)

    pdf_bytes = export_pdf(ReportData(
        label=rng.label, stats=stats, delta=stats.delta, target_hours=rng.target_hours,
        shifts=result.shifts, shift_types=settings.shift_types,
    ))
    st.download_button(
        "PDF exportieren",
        data=pdf_bytes,
        file_name=build_filename(rng.label),
        mime="application/pdf",
        use_container_width=True,
    )


# =========================
# ⚙️ Einstellungen
# =========================
CATEGORIES = {
    "shiftCodes": "Schichtkürzel & Zeiten",
    "shiftTypes": "Schichtarten",
    "stations": "Wachen",
    "vehicles": "Fahrzeuge",
    "callSigns": "Funkrufnamen",
}


def _item_rows(category: str) -> list[tuple[str, str]]:
    """(key, display) pairs; key is the id for objects, the value for strings."""
    if category == "shiftCodes":
        return [(c.id, f"**{c.code}** · {c.hours:g} Std") for c in settings.shift_codes]
    if category == "shiftTypes":
        return [(t.id, t.name) for t in settings.shift_types]
    values = {"stations": settings.stations, "vehicles": settings.vehicles, "callSigns": settings.call_signs}
    return [(v, v) for v in values[category]]


def page_settings():
    st.header("Einstellungen")
    category = st.selectbox("Liste", list(CATEGORIES), format_func=CATEGORIES.get)
    rows = _item_rows(category)
    if not rows:
        st.caption("Liste leer")
    for key, label in rows:
        c1, c2 = st.columns([5, 1])
        c1.markdown(label)
        if c2.button("🗑️", key=f"rm_{category}_{key}"):
            if _run_write(lambda: settings_repo.remove_item(category, key), "Eintrag entfernt."):
                st.rerun()

    with st.form(f"add_{category}", clear_on_submit=True):
        if category == "shiftCodes":
            c1, c2 = st.columns([3, 1])
            code = c1.text_input("Kürzel")
            hours = c2.number_input("Std", min_value=0.0, step=0.5)
            item = {"code": code.strip(), "hours": hours} if code.strip() else None
        elif category == "shiftTypes":
            name = st.text_input("Neuer Eintrag")
            item = {"name": name.strip()} if name.strip() else None
        else:
            item = st.text_input("Neuer Eintrag").strip() or None
        if st.form_submit_button("Hinzufügen") and item:
            if _run_write(lambda: settings_repo.add_item(category, item), "Eintrag hinzugefügt."):
                st.rerun()

    st.caption(f"Speicher: {'lokal' if CONFIG.storage_backend == 'local' else 'Datenbank'}")


{
    "Journal": page_journal,
    "Neue Schicht": page_entry,
    "Auswertung": page_analysis,
    "Einstellungen": page_settings,
}[page]()

"""
Streamlit KML/KMZ → GeoJSON Converter
Upload → convert with Gemini → verify on the map → copy or download
"""

from __future__ import annotations
import asyncio
import logging

import streamlit as st
import streamlit.components.v1 as components
from dotenv import load_dotenv

from kmlconvert.archive import is_archive_name
from kmlconvert.client import GeminiConverter
from kmlconvert.config import Settings
from kmlconvert.mapview import MapSurface, layer_summary
from kmlconvert.pipeline import SourceFile, run_conversion
from kmlconvert.state import ConversionStatus, ResultStateMachine

load_dotenv()

# ===================== App Config & CSS =====================
st.set_page_config(page_title="KML/KMZ → GeoJSON Converter", page_icon="🗺️", layout="wide")

st.markdown(
    """
    <style>
      .block-container {max-width: 1200px; padding-top: 2.5rem; padding-bottom: 1.5rem;}
      .chip {display:inline-block; padding:4px 10px; border-radius:999px; border:1px solid #2a2f36; margin:0 6px 6px 0; font-size:0.85rem;
             background: linear-gradient(180deg,#1b1f27 0%, #141820 100%); box-shadow: 0 1px 0 rgba(255,255,255,0.04) inset;}
      .subtle {color:#9aa3af; font-size:0.9rem}
      .stButton>button, .stDownloadButton>button {border-radius: 10px; width:100%; font-weight:600}
      .stTabs [data-baseweb="tab"] {font-weight:600}
    </style>
    """,
    unsafe_allow_html=True,
)

INPUT_TYPES = {".kml": "KML", ".kmz": "KMZ (zipped KML)"}
MAP_HEIGHT = 450

# ===================== Settings & session =====================
try:
    settings = Settings.from_env()
except ValueError as e:
    st.error(f"Invalid configuration: {e}")
    st.stop()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("kmlconvert.app")

if "_machine" not in st.session_state:
    st.session_state["_machine"] = ResultStateMachine()
    st.session_state["_surface"] = MapSurface()
    st.session_state["_converter"] = GeminiConverter(settings)
    st.session_state["_source_key"] = None
    st.session_state["_rendered_attempt"] = None

machine: ResultStateMachine = st.session_state["_machine"]
surface: MapSurface = st.session_state["_surface"]
converter: GeminiConverter = st.session_state["_converter"]

# A conversion runs inside a single script run; Loading seen at the start of a
# run means that run was interrupted and its result will never arrive.
if machine.status is ConversionStatus.LOADING:
    logger.info("Abandoning interrupted attempt %s", machine.current.attempt_id)
    machine.select(machine.current.source_name)

# ===================== Header =====================
col_logo, col_title = st.columns([1, 6], vertical_alignment="center")
with col_logo:
    st.write("🗺️")
with col_title:
    st.markdown("<h1>KML/KMZ → GeoJSON Converter</h1>", unsafe_allow_html=True)
    st.markdown('<div class="subtle">Pick a file → convert → verify on the map → copy or download</div>', unsafe_allow_html=True)
    st.markdown(
        '<div>'
        '<span class="chip">KML</span> '
        '<span class="chip">KMZ</span> '
        '<span class="chip">Gemini</span> '
        '<span class="chip">Map Preview</span>'
        '</div>',
        unsafe_allow_html=True
    )

# ===================== Sidebar =====================
st.sidebar.header("⚙️ Options")

with st.sidebar.expander("Conversion service", expanded=True):
    st.caption(f"Model: `{settings.model}` · temperature {settings.temperature}")
    st.caption(f"Source budget: first {settings.max_source_chars:,} characters")
    if settings.has_credential:
        st.success("API key configured.")
    else:
        st.warning("No GEMINI_API_KEY set; conversions will fail until it is configured.")

with st.sidebar.expander("Output formatting"):
    preview_rows = st.number_input("Preview rows", min_value=1, max_value=200, value=10)

st.divider()

# ===================== Helpers =====================

def _source_key(file) -> tuple | None:
    if file is None:
        return None
    return (getattr(file, "file_id", None), file.name, getattr(file, "size", None))


def _sync_selection(file) -> None:
    """Any change of uploaded file starts over from a fresh Idle attempt."""
    key = _source_key(file)
    if key == st.session_state["_source_key"]:
        return
    st.session_state["_source_key"] = key
    if file is None:
        machine.clear()
    else:
        machine.select(file.name)


def _convert(file) -> None:
    current = machine.current
    if current is None or current.is_terminal:
        machine.select(file.name)
    source = SourceFile(name=file.name, data=file.getvalue())
    label = "Extracting & Converting…" if is_archive_name(file.name) else "Converting…"
    with st.spinner(label):
        asyncio.run(run_conversion(machine, source, converter))


def _render_result() -> None:
    attempt = machine.current
    if attempt is None or attempt.status is ConversionStatus.IDLE:
        st.info("First select a file (.kml or .kmz) and click convert")
        return
    if attempt.status is ConversionStatus.ERROR:
        st.error(f"⚠️ {attempt.error_message}")
        st.caption(f"Error kind: {attempt.error_kind.value}")
        return
    if attempt.status is not ConversionStatus.SUCCESS:
        return

    document = attempt.result_document
    if st.session_state["_rendered_attempt"] != attempt.attempt_id:
        surface.update(document)
        st.session_state["_rendered_attempt"] = attempt.attempt_id

    head_l, head_r = st.columns([3, 1], vertical_alignment="center")
    with head_l:
        st.markdown(f"`{attempt.output_name}`")
    with head_r:
        st.download_button(
            label="Download .json",
            data=document.encode("utf-8"),
            file_name=attempt.output_name or "converted.json",
            mime="application/json",
            use_container_width=True,
        )

    left, right = st.columns([2.2, 1])
    with left:
        st.markdown("#### Map Preview")
        if surface.map is not None:
            components.html(surface.map.get_root().render(), height=MAP_HEIGHT)
        st.caption("Verify your KML/KMZ data visually")
    with right:
        st.markdown("#### Layer info")
        summary = layer_summary(document)
        st.json(summary.as_dict())
        if summary.feature_count == 0:
            st.caption("No drawable features in this document; see the raw GeoJSON below.")

    if summary.table is not None and not summary.table.empty:
        st.markdown("#### Properties")
        st.dataframe(summary.table.head(preview_rows))

    st.markdown("#### GeoJSON")
    st.code(document, language="json")

# ===================== Tabs =====================
convert_tab, help_tab = st.tabs(["🔄 Convert", "❓ Help"])

# ===================== Convert Tab =====================
with convert_tab:
    st.markdown("### File to convert")
    uploaded = st.file_uploader(
        "Choose a KML or KMZ file",
        type=[ext.strip(".") for ext in INPUT_TYPES],
        accept_multiple_files=False,
    )
    _sync_selection(uploaded)

    if uploaded is not None and not is_archive_name(uploaded.name):
        size = getattr(uploaded, "size", 0) or 0
        if size > settings.max_source_chars:
            st.warning(
                f"Large file ({size:,} bytes): only the first {settings.max_source_chars:,} characters "
                "are sent for conversion."
            )

    col_convert, col_clear = st.columns([4, 1])
    with col_convert:
        do_convert = st.button(
            "Convert",
            type="primary",
            use_container_width=True,
            disabled=uploaded is None or machine.status is ConversionStatus.LOADING,
        )
    with col_clear:
        if st.button("Clear", use_container_width=True, disabled=machine.current is None):
            if uploaded is not None:
                machine.select(uploaded.name)
            else:
                machine.clear()

    if do_convert and uploaded is not None:
        _convert(uploaded)

    st.markdown("---")
    st.markdown("### Result")
    _render_result()

# ===================== Help Tab =====================
with help_tab:
    st.markdown("### About & Help")
    st.markdown(
        """
**What this tool does**
- Reads a `.kml` file, or the first `.kml` inside a `.kmz` archive
- Asks Gemini to rewrite it as GeoJSON, keeping coordinates, names, descriptions and timestamps
- Checks the reply is a parseable JSON object before showing it
- Draws the result on an OpenStreetMap base map so you can check it visually

**Tips**
- Only the first characters of very large files are sent; split big KML files first.
- The AI output is checked for JSON syntax only. Inspect the map before using the file.
- If a conversion fails with a service error, just press Convert again.

**Configuration**
Set `GEMINI_API_KEY` in the environment or a local `.env` file.
        """
    )
    st.caption("Built with Streamlit • Gemini • folium/Leaflet • GeoPandas/Shapely ✨")

"""
Chani — Call Analytics Dashboard

Run with:  streamlit run app.py
"""

import logging
import sys
from pathlib import Path

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

sys.path.insert(0, str(Path(__file__).resolve().parent))

from chani_dashboard.calls_table import CallsViewState, SortField, sort_indicator
from chani_dashboard.config import APP_NAME, CALL_COLUMN_LABELS, CHART_COLORS, get_settings
from chani_dashboard.dashboard import (
    export_calls,
    format_calls_for_display,
    get_dashboard_overview,
    get_metric_cards,
)
from chani_dashboard.loaders import connect_store
from chani_dashboard.simulator import InMemoryTranscriptionStore
from chani_dashboard.sync import LiveTranscriptions, RecordState

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Chani Dashboard",
    page_icon="📞",
    layout="wide",
    initial_sidebar_state="expanded",
)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ---------------------------------------------------------------------------
# Live data (one subscription per process, shared by every session)
# ---------------------------------------------------------------------------
@st.cache_resource
def get_live() -> LiveTranscriptions:
    async def make_source():
        if settings.has_backend:
            return await connect_store(settings)
        return InMemoryTranscriptionStore()

    # Follows the whole table; each session applies its own date range
    live = LiveTranscriptions(make_source)
    live.start()
    return live


def snapshot_key(state: RecordState) -> tuple:
    return (state.revision, state.in_flight, state.last_error)


@st.fragment(run_every=settings.ui_refresh_seconds)
def watch_live(live: LiveTranscriptions) -> None:
    """Rerun the page once the live snapshot differs from what it rendered."""
    if snapshot_key(live.snapshot()) != st.session_state.get("rendered_snapshot"):
        st.rerun()


def render_live_state(live: LiveTranscriptions, state: RecordState, loading_message: str) -> None:
    """Register the watcher, report fetch errors, and stop while a fetch is pending."""
    st.session_state["rendered_snapshot"] = snapshot_key(state)
    watch_live(live)

    if state.last_error:
        st.warning(f"Could not refresh calls: {state.last_error}")
    if not state.settled:
        st.info(loading_message)
        st.stop()


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title(APP_NAME)
st.sidebar.markdown("Call Analytics Dashboard")
st.sidebar.divider()

page = st.sidebar.radio("Navigate", ["Dashboard", "Calls"])

st.sidebar.divider()
if settings.has_backend:
    st.sidebar.caption(f"Data: Supabase table '{settings.transcriptions_table}' (live)")
else:
    st.sidebar.caption("Data: simulated transcriptions (SUPABASE_URL not set)")

live = get_live()
if st.sidebar.button("Refresh now", use_container_width=True):
    live.refresh().result()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def metric_card(label: str, value: str):
    st.markdown(
        f"""
        <div style="background: #f7f7fb; border-left: 4px solid {CHART_COLORS['cost']};
                    border-radius: 8px; padding: 16px; margin-bottom: 8px;">
            <div style="font-size: 13px; color: #888; font-weight: 600; text-transform: uppercase;">{label}</div>
            <div style="font-size: 28px; font-weight: 700; color: #222; margin: 4px 0;">{value}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def line_chart(df: pd.DataFrame, x: str, y: str, name: str, color: str, percent: bool = False) -> go.Figure:
    fig = go.Figure(go.Scatter(
        x=df[x],
        y=df[y],
        name=name,
        mode="lines+markers",
        line=dict(color=color, width=2),
        marker=dict(size=8),
        hovertemplate="%{x}<br>%{y:.2f}" + ("%" if percent else " €") + "<extra></extra>",
    ))
    fig.update_layout(
        height=300,
        showlegend=True,
        plot_bgcolor="rgba(0,0,0,0)",
        margin=dict(l=10, r=10, t=10, b=40),
    )
    fig.update_xaxes(showgrid=True, gridcolor="#eee")
    fig.update_yaxes(showgrid=True, gridcolor="#eee")
    if percent:
        fig.update_yaxes(range=[0, 100], ticksuffix="%")
    return fig


# ===========================================================================
# PAGE: Dashboard
# ===========================================================================
if page == "Dashboard":
    st.title("Dashboard")

    col1, col2, col3 = st.columns([2, 2, 1])
    with col1:
        start_date = st.date_input("From", value=None, key="start_date")
    with col2:
        end_date = st.date_input("To", value=None, key="end_date")
    with col3:
        st.write("")
        apply = st.button("Apply", use_container_width=True)

    state = live.snapshot()
    if apply:
        st.session_state["dashboard_range"] = (start_date, end_date)
        state = live.refresh().result()
    range_start, range_end = st.session_state.get("dashboard_range", (None, None))

    render_live_state(live, state, "Loading dashboard...")

    overview = get_dashboard_overview(state.records, range_start, range_end)

    cards = get_metric_cards(overview["summary"])
    cols = st.columns(5)
    for i, card in enumerate(cards):
        with cols[i % 5]:
            metric_card(card["label"], card["value"])

    st.divider()

    st.subheader("Cost by date")
    st.plotly_chart(
        line_chart(overview["cost_by_date"], "date", "cost", "Cost (€)", CHART_COLORS["cost"]),
        use_container_width=True,
    )

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Success rate by date")
        st.plotly_chart(
            line_chart(
                overview["success_by_date"], "date", "success_rate", "Success rate",
                CHART_COLORS["success_by_date"], percent=True,
            ),
            use_container_width=True,
        )
    with col2:
        st.subheader("Success rate by script")
        st.plotly_chart(
            line_chart(
                overview["success_by_script"], "script", "success_rate", "Success rate",
                CHART_COLORS["success_by_script"], percent=True,
            ),
            use_container_width=True,
        )


# ===========================================================================
# PAGE: Calls
# ===========================================================================
elif page == "Calls":
    state = live.snapshot()

    if "calls_view" not in st.session_state:
        st.session_state["calls_view"] = CallsViewState()

    def request_sort(field: SortField) -> None:
        st.session_state["calls_view"] = st.session_state["calls_view"].with_sort_requested(field)

    col1, col2 = st.columns([3, 2])
    with col1:
        st.title("Calls")
    with col2:
        search = st.text_input("Search", placeholder="Search...", key="calls_search")

    render_live_state(live, state, "Loading calls...")

    view_state = st.session_state["calls_view"].with_search(search)
    st.session_state["calls_view"] = view_state

    header_cols = st.columns(len(SortField))
    for col, field in zip(header_cols, SortField):
        label = CALL_COLUMN_LABELS[field.value] + sort_indicator(view_state.sort, field)
        col.button(
            label,
            key=f"sort_{field.value}",
            on_click=request_sort,
            args=(field,),
            use_container_width=True,
        )

    view = view_state.apply(state.records)
    st.caption(f"{len(view)} of {len(state.records)} calls")

    if view.empty:
        st.info("No calls found.")
    else:
        st.dataframe(
            format_calls_for_display(view, settings.display_timezone),
            column_config={
                "Link": st.column_config.LinkColumn("Vapi.ai link", display_text="View call"),
            },
            use_container_width=True,
            hide_index=True,
        )

        col1, col2, _ = st.columns([1, 1, 4])
        with col1:
            st.download_button(
                "Download CSV",
                data=export_calls(view, "csv", settings.display_timezone),
                file_name="calls.csv",
                mime="text/csv",
            )
        with col2:
            st.download_button(
                "Download Excel",
                data=export_calls(view, "xlsx", settings.display_timezone),
                file_name="calls.xlsx",
                mime=XLSX_MIME,
            )

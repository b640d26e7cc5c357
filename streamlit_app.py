"""Streamlit viewer for AED installations: map, ranked list and region chart."""

from __future__ import annotations

import argparse
import asyncio

import pandas as pd
import pydeck as pdk
import streamlit as st

from aedmap.chart import RegionChart
from aedmap.geolocation import GeolocationProvider
from aedmap.listing import SiteList
from aedmap.regions import region_options
from aedmap.session import ViewerSession
from aedmap.settings import ALL_REGIONS, load_settings
from aedmap.view_state import FocusSite, SearchKeyword, SelectRegion, UpdateReference

SESSION_KEY = "viewer"


def _new_viewer(config: str | None, data: str | None) -> dict:
    settings = load_settings(config)
    if data:
        settings.data_url = data
    session = ViewerSession(settings)
    viewer = {
        "session": session,
        "listing": SiteList(session.coordinator, cap=settings.list_cap),
        "chart": RegionChart(session.coordinator, top_n=settings.chart_top_n),
        "status": "",
        "stale": "",
    }
    outcome = asyncio.run(session.start())
    viewer["status"] = outcome.message
    viewer["stale"] = outcome.metadata_message
    return viewer


def get_viewer(config: str | None, data: str | None) -> dict:
    if SESSION_KEY not in st.session_state:
        st.session_state[SESSION_KEY] = _new_viewer(config, data)
    return st.session_state[SESSION_KEY]


def prepare_map(view_df: pd.DataFrame, selection_id, fit_bounds, reference):
    if view_df.empty:
        st.info("No sites to render on the map.")
        return
    df_map = view_df.copy()
    df_map["color"] = [
        [244, 91, 105, 220] if selection_id is not None and sid == selection_id else [78, 121, 167, 180]
        for sid in df_map["id"]
    ]
    if reference is not None:
        initial_view = {"latitude": reference.lat, "longitude": reference.lon, "zoom": 13}
    elif fit_bounds is not None:
        initial_view = {
            "latitude": (fit_bounds.south + fit_bounds.north) / 2,
            "longitude": (fit_bounds.west + fit_bounds.east) / 2,
            "zoom": 10 if len(df_map) < 200 else 8,
        }
    else:
        initial_view = {"latitude": df_map["lat"].mean(), "longitude": df_map["lon"].mean(), "zoom": 9}
    layer = pdk.Layer(
        "ScatterplotLayer",
        data=df_map,
        get_position=["lon", "lat"],
        get_radius=60,
        radius_min_pixels=3,
        get_fill_color="color",
        pickable=True,
    )
    tooltip = {
        "html": "<b>{name}</b><br>{region} / {address}<br>{location}<br>{available_days} {available_hours}",
        "style": {"color": "white"},
    }
    st.pydeck_chart(pdk.Deck(layers=[layer], initial_view_state=initial_view, tooltip=tooltip))


def render_chart(chart: RegionChart):
    data = chart.data
    if not data.labels:
        return
    st.subheader("Sites per region (top)")
    st.bar_chart(pd.DataFrame({"sites": data.counts}, index=data.labels))
    choice = st.selectbox(
        "Show region from chart",
        options=[-1] + list(range(len(data.labels))),
        format_func=lambda i: "-" if i < 0 else f"{data.labels[i]} ({data.counts[i]})",
        key="chart_pick",
    )
    if choice >= 0 and st.button("Apply chart region"):
        chart.click(choice)
        st.session_state["sync_region"] = True
        st.rerun()


def main():
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--config", help="YAML settings file.")
    parser.add_argument("--data", help="Dataset URL or local GeoJSON path.")
    args, _ = parser.parse_known_args()

    st.set_page_config(page_title="AED map", layout="wide")
    st.title("AED installations")

    viewer = get_viewer(args.config, args.data)
    session: ViewerSession = viewer["session"]
    coordinator = session.coordinator
    state = coordinator.state

    if not state.loaded:
        st.error(viewer["status"] or "Dataset not loaded.")
        return

    # Sidebar controls become commands for the coordinator.
    st.sidebar.subheader("Filters")
    options = [ALL_REGIONS] + [name for name, _ in region_options(state.region_index)]
    labels = {ALL_REGIONS: "All regions"}
    labels.update({name: f"{name} ({count:,})" for name, count in state.region_index.items()})
    if st.session_state.pop("sync_region", False) or st.session_state.get("region_select") not in options:
        st.session_state["region_select"] = state.active_region if state.active_region in options else ALL_REGIONS
    region = st.sidebar.selectbox("Region", options, format_func=lambda r: labels.get(r, r), key="region_select")
    keyword = st.sidebar.text_input("Search (name/address/location)", value=state.keyword, key="search")

    commands = []
    if region != state.active_region:
        commands.append(SelectRegion(region))
    if keyword != state.keyword:
        commands.append(SearchKeyword(keyword))

    st.sidebar.subheader("Reference location")
    near = st.sidebar.text_input("Near (place name)", value="", key="near")
    cols = st.sidebar.columns(2)
    if cols[0].button("Locate") and near.strip():
        if session.locator is None or session.locator.query != near.strip():
            session.locator = GeolocationProvider(
                near,
                timeout=session.settings.geolocation_timeout,
                max_age=session.settings.geolocation_max_age,
                user_agent=session.settings.geolocation_user_agent,
            )
        if commands:
            coordinator.drain(commands)
            commands = []
        # Applies the fix to the coordinator itself; the dataset is not refetched.
        if asyncio.run(session.relocate()) is None:
            st.sidebar.caption("Location unavailable; showing sites in source order.")
    if cols[1].button("Clear") and state.reference_location is not None:
        commands.append(UpdateReference(None))

    if commands:
        coordinator.drain(commands)

    st.sidebar.subheader("Data")
    if st.sidebar.button("Refresh data", disabled=session.refresher.busy):
        outcome = asyncio.run(session.refresh())
        viewer["status"] = outcome.message
        viewer["stale"] = outcome.metadata_message
        st.session_state["sync_region"] = True
        st.rerun()
    if state.last_ingested_at is not None:
        st.sidebar.caption(f"Loaded: {state.last_ingested_at:%Y-%m-%d %H:%M}")
    if state.source_last_edited is not None:
        st.sidebar.caption(f"Source updated: {state.source_last_edited:%Y-%m-%d %H:%M} UTC")
    if viewer["stale"] and session.settings.metadata_url:
        st.sidebar.caption(viewer["stale"])
    if viewer["status"]:
        st.sidebar.warning(viewer["status"])

    update = coordinator.last_update or coordinator.current_update()
    kpi = st.columns(3)
    kpi[0].metric("Sites", f"{update.total_count:,}")
    kpi[1].metric("Regions", f"{update.region_count:,}")
    kpi[2].metric("Matching", f"{update.filtered_count:,}")

    prepare_map(update.sites, update.selection_id, update.fit_bounds, update.reference_location)

    listing: SiteList = viewer["listing"]
    st.subheader("Sites")
    st.caption(listing.summary)
    for entry in listing.entries:
        header = f"{'▶ ' if entry.selected else ''}{entry.title}"
        with st.expander(header, expanded=entry.selected):
            for line in entry.lines:
                st.write(line)
            st.markdown(f"[Directions]({entry.directions})")
            if st.button("Focus", key=f"focus_{entry.site.id}"):
                coordinator.dispatch(FocusSite(entry.site.id))
                st.rerun()

    render_chart(viewer["chart"])


if __name__ == "__main__":
    main()

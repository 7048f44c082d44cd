"""
Map Visualization Module for GraftWatch

Generates interactive Folium maps of corruption reports, colored by
moderation status and clustered when zoomed out.
"""

import html
import logging
from typing import Iterable, Optional, Tuple

import folium
from folium.plugins import MarkerCluster

from graftwatch.core.config import settings
from graftwatch.core.constants import CORRUPTION_TYPE_LABELS, STATUS_COLORS
from graftwatch.crowdsource.models import Report

logger = logging.getLogger(__name__)


def get_status_color(status: str) -> str:
    """Get marker color based on moderation status."""
    return STATUS_COLORS.get(status, "gray")


def get_vote_radius(report: Report) -> int:
    """Marker radius grows with the number of credibility votes."""
    total = sum(report.votes.values())
    if total < 5:
        return 6
    elif total < 20:
        return 9
    elif total < 50:
        return 12
    else:
        return 15


def _popup_html(report: Report) -> str:
    color = get_status_color(report.status.value)
    label = CORRUPTION_TYPE_LABELS.get(report.corruption_type, report.corruption_type)
    address = html.escape(report.location.address) if report.location and report.location.address else ""
    created = report.created_at.strftime("%Y-%m-%d %H:%M") if report.created_at else "-"
    description = html.escape(report.description[:280])

    return f"""
    <div style="font-family: Arial; min-width: 220px;">
        <h4 style="margin: 0; color: {color};">{html.escape(label)}</h4>
        <hr style="margin: 5px 0;">
        <b>Status:</b> {report.status.value}<br>
        <b>Votes:</b> {report.votes.get("true", 0)} true /
            {report.votes.get("suspicious", 0)} suspicious /
            {report.votes.get("needEvidence", 0)} need evidence<br>
        {f"<b>Address:</b> {address}<br>" if address else ""}
        <b>Time:</b> {created}<br>
        <b>Description:</b> {description}
    </div>
    """


_PANEL_STYLE = (
    "position: fixed; z-index: 9999; background-color: rgba(255,255,255,0.9); "
    "border-radius: 5px; font-family: Arial;"
)


def _title_html(title: str, count: int) -> str:
    return (
        f'<div style="{_PANEL_STYLE} top: 10px; left: 50px; padding: 8px 16px;">'
        f'<h3 style="margin: 0;">{html.escape(title)}</h3>'
        f'<p style="margin: 4px 0 0 0; color: #555; font-size: 12px;">{count} reports on the map</p>'
        f'</div>'
    )


def _legend_html() -> str:
    rows = "".join(
        f'<span style="color: {color};">&#9679;</span> {status.capitalize()}<br>'
        for status, color in STATUS_COLORS.items()
    )
    return (
        f'<div style="{_PANEL_STYLE} bottom: 30px; right: 30px; padding: 10px; font-size: 12px;">'
        f'<b>Moderation status</b><br>{rows}'
        f'<hr style="margin: 4px 0;">Marker size grows with votes cast'
        f'</div>'
    )


def create_report_map(
    reports: Iterable[Report],
    center: Optional[Tuple[float, float]] = None,
    zoom: Optional[int] = None,
    title: str = "GraftWatch - Corruption Reports",
    cluster_markers: bool = True,
) -> folium.Map:
    """
    Create an interactive map with report markers.

    Args:
        reports: Reports to draw; those without a location are skipped
        center: Map center (lat, lng). Defaults to the configured center.
        zoom: Initial zoom level (1-18)
        title: Map title
        cluster_markers: Cluster markers when zoomed out

    Returns:
        Folium Map object
    """
    located = [r for r in reports if r.location is not None]

    report_map = folium.Map(
        location=center or settings.default_map_center,
        zoom_start=zoom or settings.default_map_zoom,
        tiles=None,
    )

    for tiles, name in (("OpenStreetMap", "Street"), ("CartoDB positron", "Light")):
        folium.TileLayer(tiles=tiles, name=name).add_to(report_map)

    layer = MarkerCluster if cluster_markers else folium.FeatureGroup
    marker_group = layer(name="Reports")

    for report in located:
        color = get_status_color(report.status.value)
        folium.CircleMarker(
            location=[report.location.lat, report.location.lng],
            radius=get_vote_radius(report),
            popup=folium.Popup(_popup_html(report), max_width=320),
            color=color,
            fill=True,
            fill_color=color,
            fill_opacity=0.7,
            weight=2,
        ).add_to(marker_group)

    marker_group.add_to(report_map)
    folium.LayerControl(position="topright").add_to(report_map)

    report_map.get_root().html.add_child(folium.Element(_title_html(title, len(located))))
    report_map.get_root().html.add_child(folium.Element(_legend_html()))

    logger.info(f"Created map with {len(located)} reports")
    return report_map


def save_report_map(
    reports: Iterable[Report],
    output_path: str = "graftwatch_map.html",
) -> str:
    """
    Generate and save a report map.

    Returns:
        Path to saved file
    """
    report_map = create_report_map(reports)
    report_map.save(output_path)
    logger.info(f"Map saved to {output_path}")
    return output_path

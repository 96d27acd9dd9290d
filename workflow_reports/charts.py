from typing import Dict

import plotly.graph_objects as go

from .config import PLOTLY_CONFIG, STATUS_COLORS, STATUS_LABELS


def incident_status_figure(breakdown: Dict[str, int], height: int = 260) -> go.Figure:
    """Horizontal bar of incidents per status, coloured like the status badges."""
    statuses = list(breakdown.keys())
    fig = go.Figure(
        go.Bar(
            x=[breakdown[s] for s in statuses],
            y=[STATUS_LABELS.get(s, s) for s in statuses],
            orientation="h",
            text=[breakdown[s] for s in statuses],
            textposition="outside",
            cliponaxis=False,
            marker=dict(color=[STATUS_COLORS.get(s, "#7f8c8d") for s in statuses]),
        )
    )
    fig.update_layout(
        height=height,
        width=640,
        margin=dict(l=24, r=24, t=24, b=24),
        showlegend=False,
        template="plotly_white",
        paper_bgcolor="white",
        plot_bgcolor="white",
        font=dict(family="Helvetica", size=12, color="#1f2933"),
    )
    fig.update_xaxes(rangemode="tozero", automargin=True, dtick=1)
    fig.update_yaxes(automargin=True, autorange="reversed")
    return fig


def figure_html(fig: go.Figure) -> str:
    """
    Inline the figure with plotly.js bundled so the page needs no network
    access while the headless browser loads it.
    """
    return fig.to_html(full_html=False, include_plotlyjs=True, config=PLOTLY_CONFIG)

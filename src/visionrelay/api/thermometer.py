"""SVG confidence gauge rendered next to each classification score."""

from __future__ import annotations

from dataclasses import dataclass

GAUGE_WIDTH = 312.0

_SVG_TEMPLATE = """\
<svg xmlns="http://www.w3.org/2000/svg" width="340" height="40" viewBox="0 0 340 40">
  <rect x="14" y="14" width="{width:.0f}" height="12" rx="6" fill="#e0e0e0"/>
  <rect x="14" y="14" width="{xloc:.1f}" height="12" rx="6" fill="{color}"/>
  <circle cx="{marker:.1f}" cy="20" r="9" fill="{color}" stroke="#3d3d3d" stroke-width="1"/>
  <text x="{marker:.1f}" y="38" font-family="Helvetica, Arial, sans-serif" font-size="9"
        text-anchor="middle" fill="#3d3d3d">{score:.2f}</text>
</svg>
"""


@dataclass(frozen=True)
class ScoreGauge:
    score: float
    xloc: float
    color: str


def score_gauge(score: float) -> ScoreGauge:
    """Map a 0..1 score to its marker position and colour band."""
    if score >= 0.8:
        color = "#b9e7c9"
    elif score >= 0.6:
        color = "#f5d5bb"
    else:
        color = "#f4bac0"
    return ScoreGauge(score=score, xloc=score * GAUGE_WIDTH, color=color)


def render_thermometer(score: float) -> str:
    gauge = score_gauge(score)
    return _SVG_TEMPLATE.format(
        width=GAUGE_WIDTH,
        xloc=gauge.xloc,
        marker=14 + gauge.xloc,
        color=gauge.color,
        score=gauge.score,
    )

"""
SVG rendering of a layout frame.

Bubble styles come from a fixed set of gradients registered once per document,
indexed by a price-change bucket, plus one shared clip shape for icons.
"""

import html
import logging
from typing import Dict, Optional, Tuple

from interaction_controller import Popover
from models import Frame, ViewTransform

logger = logging.getLogger("render_adapter")

COLOR_DOMAIN = (-20.0, 0.0, 20.0)
COLOR_RANGE = ("#cc2442", "#8a97b2", "#14F195")
GRADIENT_BUCKETS = 9
CLIP_ID = "bubble-clip"
BACKGROUND = "#090a0f"


def _hex_to_rgb(value: str) -> Tuple[int, int, int]:
    value = value.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def _rgb_to_hex(rgb: Tuple[float, float, float]) -> str:
    return "#" + "".join(f"{max(0, min(255, round(c))):02x}" for c in rgb)


def change_color(pct: float) -> str:
    """Red -> grey -> green over [-20, 0, 20] percent, clamped."""
    lo, mid, hi = COLOR_DOMAIN
    pct = max(lo, min(hi, pct))
    if pct <= mid:
        t, a, b = (pct - lo) / (mid - lo), COLOR_RANGE[0], COLOR_RANGE[1]
    else:
        t, a, b = (pct - mid) / (hi - mid), COLOR_RANGE[1], COLOR_RANGE[2]
    ra, rb = _hex_to_rgb(a), _hex_to_rgb(b)
    return _rgb_to_hex(tuple(ca + (cb - ca) * t for ca, cb in zip(ra, rb)))


class StyleTemplates:
    def __init__(self, buckets: int = GRADIENT_BUCKETS):
        self.buckets = buckets
        lo, _, hi = COLOR_DOMAIN
        step = (hi - lo) / buckets
        self.colors: Dict[int, str] = {
            i: change_color(lo + step * (i + 0.5)) for i in range(buckets)
        }

    def bucket(self, pct: float) -> int:
        lo, _, hi = COLOR_DOMAIN
        t = (max(lo, min(hi, pct)) - lo) / (hi - lo)
        return min(self.buckets - 1, int(t * self.buckets))

    def gradient_id(self, pct: float) -> str:
        return f"hype-grad-{self.bucket(pct)}"

    def defs(self) -> str:
        parts = ["<defs>"]
        for i, color in self.colors.items():
            parts.append(
                f'<radialGradient id="hype-grad-{i}" cx="35%" cy="30%" r="75%">'
                f'<stop offset="0%" stop-color="#ffffff" stop-opacity="0.35"/>'
                f'<stop offset="55%" stop-color="{color}" stop-opacity="0.85"/>'
                f'<stop offset="100%" stop-color="{color}" stop-opacity="0.55"/>'
                f"</radialGradient>"
            )
        parts.append(
            f'<clipPath id="{CLIP_ID}" clipPathUnits="objectBoundingBox">'
            f'<circle cx="0.5" cy="0.5" r="0.5"/></clipPath>'
        )
        parts.append("</defs>")
        return "".join(parts)


def _render_popover(popover: Popover) -> str:
    lines = popover.lines
    width = 12 + 7 * max(len(line) for line in lines)
    height = 10 + 16 * len(lines)
    parts = [
        f'<g class="popover" transform="translate({popover.x:.1f},{popover.y:.1f})">',
        f'<rect width="{width}" height="{height}" rx="8" fill="#0f1117" fill-opacity="0.92" stroke="#ffffff" stroke-opacity="0.15"/>',
    ]
    for i, line in enumerate(lines):
        weight = "700" if i == 0 else "400"
        parts.append(
            f'<text x="8" y="{20 + 16 * i}" fill="#ffffff" font-size="12" font-weight="{weight}">{html.escape(line)}</text>'
        )
    parts.append("</g>")
    return "".join(parts)


def render_svg(frame: Frame, transform: ViewTransform, width: float, height: float,
               selected_id: Optional[str] = None, hovered_id: Optional[str] = None,
               popover: Optional[Popover] = None, templates: Optional[StyleTemplates] = None) -> str:
    templates = templates or StyleTemplates()
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width:.0f}" height="{height:.0f}" '
        f'viewBox="0 0 {width:.0f} {height:.0f}">',
        templates.defs(),
        f'<rect width="100%" height="100%" fill="{BACKGROUND}"/>',
        f'<g class="scene" transform="{transform.to_svg()}">',
    ]

    for item in frame.nodes:
        node, r = item.node, item.radius
        if node.id == selected_id:
            stroke, stroke_width = "#ffffff", 3
        elif node.id == hovered_id:
            stroke, stroke_width = "#ffffff", 2
        else:
            stroke, stroke_width = "#ffffff", 0.5
        parts.append(f'<g class="bubble" data-id="{html.escape(node.id)}" transform="translate({item.x:.2f},{item.y:.2f})">')
        parts.append(
            f'<circle r="{r:.2f}" fill="url(#{templates.gradient_id(node.price_change)})" '
            f'stroke="{stroke}" stroke-opacity="0.6" stroke-width="{stroke_width}"/>'
        )
        if node.icon and r >= 14:
            size = r * 0.9
            parts.append(
                f'<image href="{html.escape(node.icon)}" x="{-size / 2:.2f}" y="{-r * 0.75:.2f}" '
                f'width="{size:.2f}" height="{size:.2f}" clip-path="url(#{CLIP_ID})"/>'
            )
        font_size = max(8.0, r / 3.2)
        parts.append(
            f'<text text-anchor="middle" y="{r * 0.45:.2f}" fill="#ffffff" font-size="{font_size:.1f}" '
            f'font-weight="700">{html.escape(node.symbol)}</text>'
        )
        if r >= 24:
            parts.append(
                f'<text text-anchor="middle" y="{r * 0.45 + font_size:.2f}" fill="#ffffff" fill-opacity="0.75" '
                f'font-size="{font_size * 0.7:.1f}">{node.price_change:+.1f}%</text>'
            )
        parts.append("</g>")

    parts.append("</g>")
    if popover is not None and not popover.closed:
        parts.append(_render_popover(popover))
    parts.append("</svg>")
    return "".join(parts)

"""Rewrite OKLab/OKLCH color functions into rgb() strings before rasterization.

The rasterizers we drive only understand sRGB color syntax. A page styled with
``oklch(...)`` or ``oklab(...)`` would otherwise lose those declarations (or
fail the capture outright), so the pre-capture hook rewrites every occurrence
in the cloned document:

- declarations of every style-sheet rule,
- the text of every ``<style>`` element,
- the inline style text of every element.

The clone is duck-typed: ``style_sheets`` (each with ``rules``, each rule with a
mutable ``style`` mapping of property -> value), ``style_elements`` (each with a
mutable ``text``) and ``elements`` (each with a mutable ``style_text``). Missing
attributes are treated as empty collections.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Any, Iterable, Optional, Sequence, Tuple

from magnifier_client.logging_utils import LOGGER_NAME

_LOGGER = logging.getLogger(LOGGER_NAME)

FALLBACK_COLOR = "rgb(128, 128, 128)"

# One level of nested parentheses so var()/calc() arguments stay inside the match.
_COLOR_FUNCTION_RE = re.compile(r"\b(oklch|oklab)\(((?:[^()]|\([^()]*\))*)\)", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^([+-]?(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?)(%|deg|rad|grad|turn)?$", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"[\s,/]+")

# Percentage reference ranges from CSS Color 4.
_AB_PERCENT_REFERENCE = 0.4
_CHROMA_PERCENT_REFERENCE = 0.4

Channel = Tuple[float, Optional[str]]


def _srgb_gamma(linear: float) -> float:
    if linear <= 0.0031308:
        return 12.92 * linear
    return 1.055 * math.pow(linear, 1.0 / 2.4) - 0.055


def _to_byte(channel: float) -> int:
    return int(round(max(0.0, min(1.0, channel)) * 255))


def oklab_to_rgb(lightness: float, a: float, b: float) -> Tuple[int, int, int]:
    """Convert OKLab components to an sRGB byte triple.

    OKLab -> non-linear LMS -> LMS (cubed) -> linear sRGB -> gamma-encoded sRGB.
    Out-of-gamut channels are clipped.
    """
    l_ = lightness + 0.3963377774 * a + 0.2158037573 * b
    m_ = lightness - 0.1055613458 * a - 0.0638541728 * b
    s_ = lightness - 0.0894841775 * a - 1.2914855480 * b

    l_cubed = l_ * l_ * l_
    m_cubed = m_ * m_ * m_
    s_cubed = s_ * s_ * s_

    red = 4.0767416621 * l_cubed - 3.3077115913 * m_cubed + 0.2309699292 * s_cubed
    green = -1.2684380046 * l_cubed + 2.6097574011 * m_cubed - 0.3413193965 * s_cubed
    blue = -0.0041960863 * l_cubed - 0.7034186147 * m_cubed + 1.7076147010 * s_cubed

    return _to_byte(_srgb_gamma(red)), _to_byte(_srgb_gamma(green)), _to_byte(_srgb_gamma(blue))


def oklch_to_rgb(lightness: float, chroma: float, hue_degrees: float) -> Tuple[int, int, int]:
    """Convert OKLCH to sRGB by projecting chroma/hue onto the a/b plane first."""
    hue = math.radians(hue_degrees)
    return oklab_to_rgb(lightness, chroma * math.cos(hue), chroma * math.sin(hue))


def _parse_channels(arguments: str) -> list[Channel]:
    channels: list[Channel] = []
    for token in _SEPARATOR_RE.split(arguments.strip()):
        if not token:
            continue
        if token.lower() == "none":
            channels.append((0.0, None))
            continue
        match = _NUMBER_RE.match(token)
        if match is None:
            continue
        unit = match.group(2).lower() if match.group(2) else None
        channels.append((float(match.group(1)), unit))
    return channels


def _lightness(channel: Channel) -> float:
    value, unit = channel
    return value / 100.0 if unit == "%" else value


def _percent_scaled(channel: Channel, reference: float) -> float:
    value, unit = channel
    return value / 100.0 * reference if unit == "%" else value


def _hue_degrees(channel: Channel) -> float:
    value, unit = channel
    if unit == "rad":
        return math.degrees(value)
    if unit == "grad":
        return value * 0.9
    if unit == "turn":
        return value * 360.0
    return value


def _alpha(channel: Channel) -> float:
    value, unit = channel
    if unit == "%":
        value = value / 100.0
    return max(0.0, min(1.0, value))


def convert_color_function(name: str, arguments: str) -> str:
    """Return an rgb()/rgba() string for one ``oklch``/``oklab`` call.

    Accepts space syntax (``oklch(0.7 0.1 200 / 50%)``) and comma syntax
    (``oklch(0.7, 0.1, 200, 0.5)``). Fewer than three numeric channels yields
    the neutral fallback gray.
    """
    channels = _parse_channels(arguments)
    if len(channels) < 3:
        return FALLBACK_COLOR
    lightness = _lightness(channels[0])
    if name.lower() == "oklch":
        chroma = _percent_scaled(channels[1], _CHROMA_PERCENT_REFERENCE)
        red, green, blue = oklch_to_rgb(lightness, chroma, _hue_degrees(channels[2]))
    else:
        a = _percent_scaled(channels[1], _AB_PERCENT_REFERENCE)
        b = _percent_scaled(channels[2], _AB_PERCENT_REFERENCE)
        red, green, blue = oklab_to_rgb(lightness, a, b)
    if len(channels) >= 4:
        alpha = _alpha(channels[3])
        if alpha < 1.0:
            return f"rgba({red}, {green}, {blue}, {alpha:g})"
    return f"rgb({red}, {green}, {blue})"


def contains_color_function(text: str) -> bool:
    lowered = text.lower()
    return "oklch(" in lowered or "oklab(" in lowered


def replace_color_functions(text: str) -> str:
    """Rewrite every unsupported color function occurrence inside ``text``."""
    if not text or not contains_color_function(text):
        return text

    def _substitute(match: "re.Match[str]") -> str:
        try:
            return convert_color_function(match.group(1), match.group(2))
        except Exception as exc:
            _LOGGER.debug("Color conversion failed for %r: %s", match.group(0), exc)
            return FALLBACK_COLOR

    return _COLOR_FUNCTION_RE.sub(_substitute, text)


def _iter(source: Any, attribute: str) -> Iterable[Any]:
    value = getattr(source, attribute, None)
    if value is None:
        return ()
    if callable(value):
        value = value()
    return value or ()


def _sanitize_rules(rules: Sequence[Any]) -> int:
    rewritten = 0
    for rule in rules:
        style = getattr(rule, "style", None)
        if style is None:
            continue
        try:
            for prop in list(style.keys()):
                value = style[prop]
                if isinstance(value, str) and contains_color_function(value):
                    style[prop] = replace_color_functions(value)
                    rewritten += 1
        except Exception as exc:
            _LOGGER.debug("Skipping style rule during color sanitizing: %s", exc)
    return rewritten


def sanitize_document(clone: Any) -> int:
    """Rewrite unsupported colors throughout a cloned document; returns the rewrite count.

    Only the clone is touched. A failure in one sheet, rule or element skips
    that occurrence and sanitizing continues.
    """
    rewritten = 0

    for sheet in _iter(clone, "style_sheets"):
        try:
            rules = list(_iter(sheet, "rules"))
        except Exception as exc:
            # Rules of cross-origin sheets are unreadable.
            _LOGGER.debug("Skipping unreadable style sheet: %s", exc)
            continue
        rewritten += _sanitize_rules(rules)

    for style_element in _iter(clone, "style_elements"):
        try:
            text = style_element.text
            if text and contains_color_function(text):
                style_element.text = replace_color_functions(text)
                rewritten += 1
        except Exception as exc:
            _LOGGER.debug("Skipping style element during color sanitizing: %s", exc)

    for element in _iter(clone, "elements"):
        try:
            text = element.style_text
            if text and contains_color_function(text):
                element.style_text = replace_color_functions(text)
                rewritten += 1
        except Exception as exc:
            _LOGGER.debug("Skipping inline style during color sanitizing: %s", exc)

    return rewritten

"""
Structured page metrics.

Pure functions over a parsed document (and optional CSS text); no network.
Six groups are collected: content, asset, link, visual, technical and UX.
"""

import math
import re
from collections import Counter
from typing import Any, Optional

from bs4 import BeautifulSoup, Doctype

from cro_auditor.core.urls import SKIPPED_HREF_PREFIXES, host_of

CSS_COLOR_PATTERN = re.compile(
    r"#[0-9A-Fa-f]{6}\b|#[0-9A-Fa-f]{3}\b|rgba?\([^)]+\)|hsla?\([^)]+\)"
)
FONT_FAMILY_PATTERN = re.compile(r"font-family\s*:\s*([^;}]+)", re.IGNORECASE)
COLOR_DECLARATION_PATTERN = re.compile(
    r"(?<![-\w])(color|background-color|background)\s*:\s*([^;}]+)", re.IGNORECASE
)
RGB_PATTERN = re.compile(r"^rgba?\(\s*([^)]*)\)$")

CTA_KEYWORDS = [
    "buy", "purchase", "sign up", "subscribe", "download", "get started",
    "learn more", "contact", "book", "order", "shop", "try", "start",
]
CTA_SELECTOR = 'button, a.button, a.btn, input[type="submit"]'


def inline_css(document: BeautifulSoup) -> str:
    """Concatenated text of the document's <style> blocks."""
    return "\n".join(style.get_text() for style in document.find_all("style"))


def element_text(element) -> str:
    if element.name == "input":
        return (element.get("value") or "").strip()
    return element.get_text(strip=True)


def collect_all_metrics(
    document: BeautifulSoup,
    page_url: str,
    css_text: Optional[str] = None,
    inbound_links_count: int = 0,
) -> dict[str, dict[str, Any]]:
    if css_text is None:
        css_text = inline_css(document)
    return {
        "content_metrics": collect_content_metrics(document),
        "asset_metrics": collect_asset_metrics(document),
        "link_metrics": collect_link_metrics(document, page_url, inbound_links_count),
        "visual_metrics": collect_visual_metrics(document, css_text),
        "technical_metrics": collect_technical_metrics(document),
        "ux_metrics": collect_ux_metrics(document),
    }


def collect_content_metrics(document: BeautifulSoup) -> dict[str, Any]:
    body = document.find("body")
    text = body.get_text(separator=" ") if body else ""
    words = text.split()

    return {
        "word_count": len(words),
        "character_count": len(text),
        "paragraph_count": len(document.find_all("p")),
        "heading_counts": {
            f"h{level}": len(document.find_all(f"h{level}")) for level in range(1, 7)
        },
        "list_count": len(document.find_all(["ul", "ol"])),
        "list_item_count": len(document.find_all("li")),
        "reading_time_minutes": math.ceil(len(words) / 200.0),
    }


def collect_asset_metrics(document: BeautifulSoup) -> dict[str, Any]:
    images = document.find_all("img")
    scripts = document.find_all("script", src=True)
    stylesheets = document.select('link[rel~="stylesheet"]')

    return {
        "image_count": len(images),
        "images_without_alt": sum(1 for img in images if not img.get("alt")),
        "script_count": len(scripts),
        "external_script_count": sum(1 for s in scripts if s["src"].startswith("http")),
        "stylesheet_count": len(stylesheets),
        "video_count": len(document.select('video, iframe[src*="youtube"], iframe[src*="vimeo"]')),
        "favicon_present": bool(document.select('link[rel~="icon"]')),
        "svg_count": len(document.find_all("svg")),
        "image_sources": [img["src"] for img in images if img.get("src")],
        "script_sources": [s["src"] for s in scripts],
        "stylesheet_sources": [s["href"] for s in stylesheets if s.get("href")],
    }


def collect_link_metrics(
    document: BeautifulSoup,
    page_url: str,
    inbound_links_count: int = 0,
) -> dict[str, Any]:
    anchors = document.find_all("a", href=True)
    page_host = host_of(page_url)
    internal = 0
    external = 0

    for anchor in anchors:
        href = anchor["href"]
        if href.startswith(SKIPPED_HREF_PREFIXES):
            continue
        if href.startswith("http"):
            if host_of(href) == page_host:
                internal += 1
            else:
                external += 1
        else:
            internal += 1

    return {
        "total_links": len(anchors),
        "internal_links": internal,
        "external_links": external,
        "broken_link_candidates": sum(1 for a in anchors if not a["href"].strip()),
        "links_without_text": sum(
            1 for a in anchors if not a.get_text(strip=True) and not a.find("img")
        ),
        "links_opening_new_tab": sum(1 for a in anchors if a.get("target") == "_blank"),
        "inbound_links_count": inbound_links_count,
    }


def extract_colors(css_text: str) -> list[str]:
    """Most frequent CSS colors, top five."""
    if not css_text:
        return []
    counts = Counter(match.lower() for match in CSS_COLOR_PATTERN.findall(css_text))
    return [color for color, _ in counts.most_common(5)]


def extract_font_families(document: BeautifulSoup, css_text: str) -> list[str]:
    families: list[str] = []
    for element in document.select('[style*="font-family"]'):
        match = FONT_FAMILY_PATTERN.search(element["style"])
        if match:
            families.append(match.group(1).strip())
    if css_text:
        families.extend(match.strip() for match in FONT_FAMILY_PATTERN.findall(css_text))

    unique: list[str] = []
    for family in families:
        if family not in unique:
            unique.append(family)
    return unique[:10]


def parse_style_declarations(style: Optional[str]) -> dict[str, str]:
    """Parse an inline style attribute into lowercase property -> value."""
    declarations: dict[str, str] = {}
    for part in (style or "").split(";"):
        prop, sep, value = part.partition(":")
        if not sep:
            continue
        value = value.replace("!important", "").strip()
        if prop.strip() and value:
            declarations[prop.strip().lower()] = value
    return declarations


def parse_color(value: Optional[str]) -> Optional[tuple[int, int, int]]:
    """Parse #rgb, #rrggbb, rgb() or rgba(); None for anything else."""
    if not value:
        return None
    value = value.strip().lower()

    if value.startswith("#"):
        hex_digits = value[1:]
        if len(hex_digits) == 3:
            hex_digits = "".join(c * 2 for c in hex_digits)
        if len(hex_digits) != 6:
            return None
        try:
            return (
                int(hex_digits[0:2], 16),
                int(hex_digits[2:4], 16),
                int(hex_digits[4:6], 16),
            )
        except ValueError:
            return None

    match = RGB_PATTERN.match(value)
    if match:
        parts = [p.strip() for p in re.split(r"[,\s/]+", match.group(1)) if p.strip()]
        if len(parts) < 3:
            return None
        try:
            channels = []
            for part in parts[:3]:
                if part.endswith("%"):
                    channels.append(round(float(part[:-1]) * 2.55))
                else:
                    channels.append(round(float(part)))
        except ValueError:
            return None
        return tuple(max(0, min(255, c)) for c in channels)

    return None


def declared_colors(document: BeautifulSoup, css_text: str, properties: tuple[str, ...]) -> list[str]:
    """Most frequent colors set through the given properties, as #rrggbb, top five.

    Reads <style> text and inline style attributes; values that are not a
    plain color (gradients, url(...), named colors) are skipped.
    """
    values = [
        match.group(2).replace("!important", "")
        for match in COLOR_DECLARATION_PATTERN.finditer(css_text or "")
        if match.group(1).lower() in properties
    ]
    for element in document.find_all(style=True):
        declarations = parse_style_declarations(element.get("style"))
        values.extend(value for prop, value in declarations.items() if prop in properties)

    counts: Counter = Counter()
    for value in values:
        rgb = parse_color(value)
        if rgb:
            counts["#{:02x}{:02x}{:02x}".format(*rgb)] += 1
    return [color for color, _ in counts.most_common(5)]


def collect_visual_metrics(document: BeautifulSoup, css_text: str) -> dict[str, Any]:
    font_links = document.select('link[href*="fonts"]')
    font_face_blocks = [s for s in document.find_all("style") if "@font-face" in s.get_text()]

    return {
        "primary_colors": extract_colors(css_text),
        "text_colors": declared_colors(document, css_text, ("color",)),
        "background_colors": declared_colors(document, css_text, ("background-color", "background")),
        "font_families": extract_font_families(document, css_text),
        "custom_fonts_count": len(font_links) + len(font_face_blocks),
    }


def _meta_content(document: BeautifulSoup, name: str) -> Optional[str]:
    tag = document.find("meta", attrs={"name": name})
    return tag.get("content") if tag else None


def collect_technical_metrics(document: BeautifulSoup) -> dict[str, Any]:
    meta_description = _meta_content(document, "description")
    viewport = _meta_content(document, "viewport")
    html_tag = document.find("html")

    return {
        "form_count": len(document.find_all("form")),
        "input_count": len(document.find_all(["input", "textarea", "select"])),
        "button_count": len(document.select('button, input[type="submit"], input[type="button"]')),
        "meta_description": meta_description,
        "meta_description_length": len(meta_description) if meta_description else 0,
        "meta_keywords": _meta_content(document, "keywords"),
        "og_tags_present": bool(document.select('meta[property^="og:"]')),
        "twitter_card_present": bool(document.select('meta[name^="twitter:"]')),
        "json_ld_count": len(document.find_all("script", type="application/ld+json")),
        "microdata_present": bool(document.select("[itemtype]")),
        "viewport_meta": viewport,
        "mobile_optimized": bool(viewport and "width=device-width" in viewport),
        "doctype_present": any(
            isinstance(item, Doctype) for item in document.contents
        ),
        "lang_attribute": html_tag.get("lang") if html_tag else None,
        "dns_prefetch_count": len(document.select('link[rel~="dns-prefetch"]')),
        "preconnect_count": len(document.select('link[rel~="preconnect"]')),
        "preload_count": len(document.select('link[rel~="preload"]')),
    }


def identify_cta_buttons(document: BeautifulSoup) -> list[dict[str, Any]]:
    ctas = []
    for element in document.select(CTA_SELECTOR):
        text = element_text(element)
        if any(keyword in text.lower() for keyword in CTA_KEYWORDS):
            ctas.append({
                "text": text,
                "type": element.name,
                "classes": " ".join(element.get("class", [])) or None,
            })
    return ctas


def collect_ux_metrics(document: BeautifulSoup) -> dict[str, Any]:
    return {
        "has_nav": bool(document.find("nav")),
        "nav_links_count": len(document.select("nav a")),
        "cta_buttons": identify_cta_buttons(document),
        "forms_with_labels": sum(1 for form in document.find_all("form") if form.find("label")),
        "required_fields": len(document.select("input[required], textarea[required], select[required]")),
        "aria_labels_count": len(document.select("[aria-label], [aria-labelledby]")),
        "skip_link_present": bool(document.select('a[href="#main"], a[href="#content"]')),
        "fixed_elements": len(
            document.select('[style*="position: fixed"], [style*="position: sticky"]')
        ),
        "search_present": bool(document.select('input[type="search"], [role="search"]')),
    }

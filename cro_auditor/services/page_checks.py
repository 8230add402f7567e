"""
Deterministic page checks.

Two families:
1. Ten pass/fail micro-tests over collected metrics (headings, title, meta
   description, alt text, favicon, viewport, HTTPS, empty hrefs)
2. Adaptive CRO tests over the parsed document (contrast, CTA prominence,
   trust signals, layout density, form friction)
"""

import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

from bs4 import BeautifulSoup

from cro_auditor.services.page_metrics import element_text, parse_color, parse_style_declarations

INTERACTIVE_SELECTOR = (
    'button, input[type="submit"], input[type="button"], a.btn, a.button, [role="button"]'
)

DEFAULT_FOREGROUND = "#000000"
DEFAULT_BACKGROUND = "#FFFFFF"
MIN_CONTRAST_RATIO = 4.5
CONTRAST_SCAN_LIMIT = 20
CONTRAST_EXAMPLES = 3

ABOVE_FOLD_ELEMENTS = 10
COMPETING_CTA_THRESHOLD = 3
EXCESSIVE_DENSITY_THRESHOLD = 500
HIGH_FRICTION_FIELDS = 7

PHONE_PATTERN = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PAYMENT_PATTERN = re.compile(r"visa|mastercard|paypal")
LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")

# Base impact per adaptive test type
IMPACT_SCORES: dict[str, int] = {
    "contrast_analysis": 85,
    "cta_prominence": 95,
    "trust_signals": 90,
    "layout_density": 70,
    "form_friction": 88,
}
DEFAULT_IMPACT_SCORE = 50


@dataclass
class CheckResult:
    test: str
    passed: bool
    message: str
    severity: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _truncate(text: str, length: int) -> str:
    return text if len(text) <= length else f"{text[:length - 3]}..."


# ---------------------------------------------------------------------------
# Micro-tests
# ---------------------------------------------------------------------------

def check_has_h1(metrics: dict) -> CheckResult:
    h1_count = metrics["content_metrics"]["heading_counts"].get("h1", 0)
    return CheckResult(
        test="Has H1 Tag",
        passed=h1_count > 0,
        message=f"Page has {h1_count} H1 tag(s)" if h1_count > 0 else "No H1 tag found",
        severity=None if h1_count > 0 else "high",
    )


def check_single_h1(metrics: dict) -> CheckResult:
    h1_count = metrics["content_metrics"]["heading_counts"].get("h1", 0)
    return CheckResult(
        test="Single H1 Tag",
        passed=h1_count == 1,
        message="Correct: Single H1 tag" if h1_count == 1 else f"Found {h1_count} H1 tags (should be 1)",
        severity=None if h1_count == 1 else "medium",
    )


def check_has_title(document: BeautifulSoup) -> CheckResult:
    title_tag = document.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""
    return CheckResult(
        test="Has Page Title",
        passed=bool(title),
        message=f"Title: {_truncate(title, 50)}" if title else "No title tag found",
        severity=None if title else "high",
    )


def check_meta_description_present(metrics: dict) -> CheckResult:
    present = bool(metrics["technical_metrics"].get("meta_description"))
    return CheckResult(
        test="Has Meta Description",
        passed=present,
        message="Meta description present" if present else "No meta description found",
        severity=None if present else "medium",
    )


def check_meta_description_length(metrics: dict) -> CheckResult:
    length = metrics["technical_metrics"].get("meta_description_length") or 0
    optimal = 120 <= length <= 160
    return CheckResult(
        test="Meta Description Length",
        passed=optimal,
        message=f"{length} characters (optimal: 120-160)",
        severity=None if optimal else "low",
    )


def check_images_have_alt_text(metrics: dict) -> CheckResult:
    missing = metrics["asset_metrics"].get("images_without_alt", 0)
    total = metrics["asset_metrics"].get("image_count", 0)
    if missing == 0:
        message = f"All {total} images have alt text"
        severity = None
    else:
        message = f"{missing} of {total} images missing alt text"
        severity = "high" if missing > 5 else "medium"
    return CheckResult(
        test="Images Have Alt Text",
        passed=missing == 0 and total > 0,
        message=message,
        severity=severity,
    )


def check_has_favicon(metrics: dict) -> CheckResult:
    present = metrics["asset_metrics"].get("favicon_present") is True
    return CheckResult(
        test="Has Favicon",
        passed=present,
        message="Favicon present" if present else "No favicon detected",
        severity=None if present else "low",
    )


def check_mobile_viewport(metrics: dict) -> CheckResult:
    optimized = metrics["technical_metrics"].get("mobile_optimized") is True
    return CheckResult(
        test="Mobile Viewport Tag",
        passed=optimized,
        message="Mobile viewport configured" if optimized else "No mobile viewport meta tag",
        severity=None if optimized else "high",
    )


def check_https(page_url: str) -> CheckResult:
    is_https = page_url.lower().startswith("https://")
    return CheckResult(
        test="HTTPS Protocol",
        passed=is_https,
        message="Site uses HTTPS" if is_https else "Site uses HTTP (insecure)",
        severity=None if is_https else "high",
    )


def check_broken_link_candidates(metrics: dict) -> CheckResult:
    candidates = metrics["link_metrics"].get("broken_link_candidates", 0)
    return CheckResult(
        test="No Broken Link Patterns",
        passed=candidates == 0,
        message="No broken link patterns detected" if candidates == 0 else f"{candidates} potential broken links",
        severity=None if candidates == 0 else "medium",
    )


def run_simple_tests(page_url: str, document: BeautifulSoup, metrics: dict) -> list[CheckResult]:
    """Run the fixed battery of ten micro-tests, in order."""
    return [
        check_has_h1(metrics),
        check_single_h1(metrics),
        check_has_title(document),
        check_meta_description_present(metrics),
        check_meta_description_length(metrics),
        check_images_have_alt_text(metrics),
        check_has_favicon(metrics),
        check_mobile_viewport(metrics),
        check_https(page_url),
        check_broken_link_candidates(metrics),
    ]


# ---------------------------------------------------------------------------
# Color contrast (WCAG 2.x)
# ---------------------------------------------------------------------------

def _linearize(channel: float) -> float:
    return channel / 12.92 if channel <= 0.03928 else ((channel + 0.055) / 1.055) ** 2.4


def relative_luminance(color: tuple[int, int, int]) -> float:
    r, g, b = (_linearize(c / 255.0) for c in color)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(foreground: tuple[int, int, int], background: tuple[int, int, int]) -> float:
    l1 = relative_luminance(foreground)
    l2 = relative_luminance(background)
    lighter, darker = max(l1, l2), min(l1, l2)
    return (lighter + 0.05) / (darker + 0.05)


def element_contrast(element) -> dict[str, Any]:
    declarations = parse_style_declarations(element.get("style"))
    fg_value = declarations.get("color") or DEFAULT_FOREGROUND
    bg_value = declarations.get("background-color") or DEFAULT_BACKGROUND

    fg = parse_color(fg_value) or parse_color(DEFAULT_FOREGROUND)
    bg = parse_color(bg_value) or parse_color(DEFAULT_BACKGROUND)
    return {"fg": fg_value, "bg": bg_value, "ratio": contrast_ratio(fg, bg)}


# ---------------------------------------------------------------------------
# Adaptive tests
# ---------------------------------------------------------------------------

def run_contrast_test(document: BeautifulSoup) -> dict[str, Any]:
    issues = []
    for element in document.select(INTERACTIVE_SELECTOR)[:CONTRAST_SCAN_LIMIT]:
        contrast = element_contrast(element)
        if contrast["ratio"] < MIN_CONTRAST_RATIO:
            issues.append({
                "element": element.name,
                "text": element_text(element)[:51],
                "foreground": contrast["fg"],
                "background": contrast["bg"],
                "ratio": round(contrast["ratio"], 2),
            })

    return {
        "low_contrast_count": len(issues),
        "examples": issues[:CONTRAST_EXAMPLES],
    }


def _style_dimension(declarations: dict[str, str], prop: str) -> float:
    match = LEADING_NUMBER.match(declarations.get(prop, ""))
    return float(match.group(1)) if match else 0


def is_prominent(element) -> bool:
    declarations = parse_style_declarations(element.get("style"))
    return (
        _style_dimension(declarations, "width") > 120
        or _style_dimension(declarations, "height") > 40
        or len(element_text(element)) > 10
    )


def run_cta_test(document: BeautifulSoup) -> dict[str, Any]:
    buttons = document.select(INTERACTIVE_SELECTOR)
    # Document order stands in for visual position
    above_fold = buttons[:ABOVE_FOLD_ELEMENTS]

    return {
        "buttons_found": len(buttons),
        "above_fold": len(above_fold),
        "has_prominent": any(is_prominent(b) for b in buttons),
        "competing": len(above_fold) > COMPETING_CTA_THRESHOLD,
    }


def run_trust_test(document: BeautifulSoup) -> dict[str, Any]:
    body = document.find("body")
    body_text = body.get_text(separator=" ") if body else ""
    image_alts = [(img.get("alt") or "").lower() for img in document.find_all("img")]

    signals = {
        "phone_visible": bool(PHONE_PATTERN.search(body_text)),
        "email_visible": bool(EMAIL_PATTERN.search(body_text)),
        "ssl_badge": any("secure" in alt for alt in image_alts),
        "payment_badges": any(PAYMENT_PATTERN.search(alt) for alt in image_alts),
        "review_elements": bool(document.select('[class*="review"], [id*="review"]')),
    }
    signals["trust_signal_count"] = sum(1 for v in signals.values() if v)
    return signals


def _max_depth(element) -> int:
    depth = 0
    stack = [(child, 1) for child in element.find_all(True, recursive=False)]
    while stack:
        node, level = stack.pop()
        depth = max(depth, level)
        stack.extend((child, level + 1) for child in node.find_all(True, recursive=False))
    return depth


def run_density_test(document: BeautifulSoup) -> dict[str, Any]:
    body = document.find("body")
    sections = body.find_all(True, recursive=False)[:ABOVE_FOLD_ELEMENTS] if body else []
    total_elements = sum(len(section.find_all(True)) for section in sections)

    return {
        "elements_above_fold": total_elements,
        "max_nesting_depth": max((_max_depth(s) + 1 for s in sections), default=0),
        "excessive_density": total_elements > EXCESSIVE_DENSITY_THRESHOLD,
    }


def _is_labeled(field, form, document: BeautifulSoup) -> bool:
    if field.get("aria-label") or field.get("aria-labelledby"):
        return True
    if field.find_parent("label") is not None:
        return True
    field_id = field.get("id")
    return bool(field_id and document.find("label", attrs={"for": field_id}))


def run_form_test(document: BeautifulSoup) -> dict[str, Any]:
    forms = []
    for form in document.find_all("form"):
        fields = [
            f for f in form.find_all(["input", "textarea", "select"])
            if (f.get("type") or "text").lower() not in ("hidden", "submit", "button", "image", "reset")
        ]
        forms.append({
            "fields": len(fields),
            "required_fields": sum(1 for f in fields if f.has_attr("required")),
            "unlabeled_fields": sum(1 for f in fields if not _is_labeled(f, form, document)),
        })

    max_fields = max((f["fields"] for f in forms), default=0)
    return {
        "form_count": len(forms),
        "forms": forms,
        "max_fields": max_fields,
        "total_unlabeled": sum(f["unlabeled_fields"] for f in forms),
        "high_friction": max_fields > HIGH_FRICTION_FIELDS,
    }


ADAPTIVE_TESTS: dict[str, Callable[[BeautifulSoup], dict[str, Any]]] = {
    "contrast_analysis": run_contrast_test,
    "cta_prominence": run_cta_test,
    "trust_signals": run_trust_test,
    "layout_density": run_density_test,
    "form_friction": run_form_test,
}


def run_adaptive_test(test_type: str, document: BeautifulSoup) -> dict[str, Any]:
    runner = ADAPTIVE_TESTS.get(test_type)
    if runner is None:
        return {"note": f"Test {test_type} not yet implemented"}
    return runner(document)


def impact_score(test_type: str) -> int:
    return IMPACT_SCORES.get(test_type, DEFAULT_IMPACT_SCORE)

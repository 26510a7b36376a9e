"""
Landing Page Analyzer

Scores a landing page on the factors Google Ads weighs for Quality Score:
speed, mobile readiness, content, keyword relevance, calls to action and
security. Domain/page authority comes from Moz when configured, otherwise
it is estimated from on-page signals.
"""
import re
import time
from datetime import datetime
from typing import Dict, List, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from adpilot.connectors.base_connector import ConnectorError
from adpilot.connectors.moz import MozConnector
from adpilot.utils.helpers import clamp, round_half_up
from adpilot.utils.logger import log

FETCH_TIMEOUT_SECONDS = 15
USER_AGENT = "Mozilla/5.0 (compatible; AdpilotBot/1.0; +https://adpilot.app/bot)"

WEIGHTS = {
    "speed": 0.20,
    "mobile": 0.20,
    "content": 0.20,
    "relevance": 0.20,
    "cta": 0.15,
    "security": 0.05,
}

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

CTA_PATTERNS = [
    (re.compile(r"buy\s*now", re.I), "purchase"),
    (re.compile(r"add\s*to\s*cart", re.I), "purchase"),
    (re.compile(r"shop\s*now", re.I), "purchase"),
    (re.compile(r"order\s*now", re.I), "purchase"),
    (re.compile(r"get\s*started", re.I), "signup"),
    (re.compile(r"sign\s*up", re.I), "signup"),
    (re.compile(r"start\s*free", re.I), "signup"),
    (re.compile(r"try\s*(it\s*)?free", re.I), "signup"),
    (re.compile(r"learn\s*more", re.I), "info"),
    (re.compile(r"contact\s*us", re.I), "contact"),
    (re.compile(r"get\s*a?\s*quote", re.I), "lead"),
    (re.compile(r"request\s*(a\s*)?demo", re.I), "lead"),
    (re.compile(r"schedule\s*(a\s*)?(call|meeting|consultation)", re.I), "lead"),
    (re.compile(r"download", re.I), "download"),
    (re.compile(r"subscribe", re.I), "subscription"),
    (re.compile(r"book\s*(now|appointment)", re.I), "booking"),
]

FONT_SIZE_PATTERN = re.compile(r"font-size:\s*(\d+)px", re.I)


def normalize_url(url: str) -> str:
    """Add https:// when no scheme is given; raise ValueError for anything but http(s)"""
    url = (url or "").strip()
    if not url:
        raise ValueError("URL is required")
    if "://" not in url:
        url = f"https://{url}"
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid URL")
    return url


def _recommendation(priority: str, category: str, message: str, impact: str) -> Dict:
    return {"priority": priority, "category": category, "message": message, "impact": impact}


def estimate_authority(html: str, url: str, load_time: float) -> Dict:
    """Rough DA/PA from TLD and on-page signals"""
    domain = urlparse(url).hostname or ""
    lower_html = html.lower()
    da, pa = 30, 25
    issues = []

    if domain.endswith(".gov") or domain.endswith(".edu"):
        da += 20
    elif domain.endswith(".org"):
        da += 5

    if "application/ld+json" in html or "itemtype=" in html:
        da += 5
        pa += 10
    else:
        issues.append("No structured data (schema.org) detected")

    if "og:" in html or "twitter:" in html:
        pa += 5

    if load_time > 3:
        da -= 5
        pa -= 10
        issues.append("Slow load time affects authority")

    if 'rel="canonical"' not in html and "rel='canonical'" not in html:
        issues.append("Missing canonical URL tag")

    if "hreflang=" in html:
        da += 3

    if "noindex" in lower_html:
        pa -= 20
        issues.append("Page has noindex directive")

    return {
        "domain_authority": int(clamp(da, 1, 100)),
        "page_authority": int(clamp(pa, 1, 100)),
        "spam_score": 0,
        "linking_domains": 0,
        "total_links": 0,
        "issues": issues,
        "source": "estimated",
    }


def moz_authority(metrics: Dict, recommendations: List[Dict]) -> Dict:
    da = round_half_up(metrics.get("domain_authority") or 0)
    pa = round_half_up(metrics.get("page_authority") or 0)
    spam = round_half_up((metrics.get("spam_score") or 0) * 100)
    issues = []

    if da < 20:
        issues.append("Low Domain Authority - build more quality backlinks")
        recommendations.append(_recommendation(
            "medium", "Authority", "Domain Authority is low", "Higher DA correlates with better rankings"))
    if spam > 30:
        issues.append(f"High Spam Score ({spam}%) - review backlink profile")
        recommendations.append(_recommendation(
            "high", "Authority", "High spam score detected", "Spammy backlinks can hurt rankings"))
    if pa < da - 20:
        issues.append("Page Authority is much lower than Domain - optimize page-level SEO")

    return {
        "domain_authority": da,
        "page_authority": pa,
        "spam_score": spam,
        "linking_domains": metrics.get("root_domains_to_root_domain") or 0,
        "total_links": metrics.get("external_pages_to_page") or 0,
        "issues": issues,
        "source": "moz",
    }


def analyze_keyword_relevance(text: str, title: str, h1s: List[str], keywords: List[str]) -> Dict:
    if not keywords:
        return {"score": 100, "matched_keywords": [], "missing_keywords": [], "keyword_density": {}}

    lower_text = text.lower()
    lower_title = title.lower()
    lower_h1s = " ".join(h.lower() for h in h1s)
    total_words = len(text.split()) or 1

    matched, missing, density = [], [], {}
    for keyword in keywords:
        count = len(re.findall(re.escape(keyword.lower()), lower_text))
        if count:
            matched.append(keyword)
            density[keyword] = round_half_up(count / total_words * 1000) / 10
        else:
            missing.append(keyword)

    bonus = 0
    for keyword in matched:
        if keyword.lower() in lower_title:
            bonus += 10
        if keyword.lower() in lower_h1s:
            bonus += 5

    score = round_half_up(len(matched) / len(keywords) * 80) + min(bonus, 20)
    return {
        "score": int(clamp(score, 0, 100)),
        "matched_keywords": matched,
        "missing_keywords": missing,
        "keyword_density": density,
    }


def find_ctas(text: str, soup: BeautifulSoup) -> List[Dict]:
    found = []
    for pattern, cta_type in CTA_PATTERNS:
        match = pattern.search(text)
        if match:
            found.append({"text": match.group(0), "type": cta_type})

    for element in soup.find_all(["button", "a"]):
        label = element.get_text(" ", strip=True)
        if not 2 < len(label) < 30:
            continue
        for pattern, cta_type in CTA_PATTERNS:
            if pattern.search(label) and not any(c["text"].lower() == label.lower() for c in found):
                found.append({"text": label, "type": cta_type})
    return found


def analyze_html(html: str, url: str, keywords: List[str], load_time: float, ttfb_ms: int,
                 has_ssl: bool, moz_metrics: Optional[Dict] = None) -> Dict:
    """Score an already-fetched page"""
    soup = BeautifulSoup(html, "html.parser")
    lower_html = html.lower()
    recommendations: List[Dict] = []

    authority = moz_authority(moz_metrics, recommendations) if moz_metrics \
        else estimate_authority(html, url, load_time)

    # Speed
    speed_issues = []
    speed = 100
    if load_time > 3:
        speed -= 30
        speed_issues.append(f"Slow load time: {load_time:.1f}s (should be <3s)")
        recommendations.append(_recommendation(
            "high", "Speed", "Page loads too slowly", "Slow pages have 53% higher bounce rate"))
    elif load_time > 2:
        speed -= 15
        speed_issues.append(f"Load time could be faster: {load_time:.1f}s")
    if ttfb_ms > 600:
        speed -= 20
        speed_issues.append(f"Slow server response: {ttfb_ms}ms TTFB")
    script_count = len(soup.find_all("script"))
    if script_count > 10:
        speed -= 10
        speed_issues.append(f"Too many scripts ({script_count})")

    # Mobile
    mobile_issues = []
    mobile = 100
    has_viewport = soup.find("meta", attrs={"name": "viewport"}) is not None or "viewport" in lower_html
    if not has_viewport:
        mobile -= 40
        mobile_issues.append("Missing viewport meta tag")
        recommendations.append(_recommendation(
            "high", "Mobile", "Add viewport meta tag for mobile responsiveness",
            "Page may not display correctly on mobile devices"))
    responsive_hints = "@media" in html or "media=" in html or "srcset" in html or "sizes=" in html
    is_responsive = has_viewport and responsive_hints
    if has_viewport and not is_responsive:
        mobile -= 20
        mobile_issues.append("Limited responsive design detected")
    small_fonts = sum(1 for size in FONT_SIZE_PATTERN.findall(html) if int(size) < 12)
    if small_fonts > 5:
        mobile -= 15
        mobile_issues.append("Some text may be too small on mobile")

    # Content
    content_issues = []
    content = 100
    title = soup.title.get_text(strip=True) if soup.title else ""
    if not title:
        content -= 20
        content_issues.append("Missing page title")
        recommendations.append(_recommendation(
            "high", "SEO", "Add a descriptive page title", "Title is crucial for ad relevance and Quality Score"))
    elif len(title) < 30:
        content -= 10
        content_issues.append("Title is too short")
    elif len(title) > 60:
        content -= 5
        content_issues.append("Title may be truncated in search results")

    description_tag = soup.find("meta", attrs={"name": "description"})
    description = (description_tag.get("content") or "").strip() if description_tag else ""
    if not description:
        content -= 15
        content_issues.append("Missing meta description")

    h1s = [h.get_text(" ", strip=True) for h in soup.find_all("h1")]
    h1s = [h for h in h1s if h]
    if not h1s:
        content -= 15
        content_issues.append("Missing H1 heading")
        recommendations.append(_recommendation(
            "medium", "SEO", "Add a clear H1 heading", "H1 helps Google understand page topic"))
    elif len(h1s) > 1:
        content -= 5
        content_issues.append("Multiple H1 headings (should have one)")

    structured_data = bool(soup.find("script", type="application/ld+json")) or "itemtype=" in html
    og_tags = bool(soup.find("meta", property=re.compile(r"^og:")))
    hreflang = bool(soup.find("link", hreflang=True))
    robots = soup.find("meta", attrs={"name": "robots"})
    noindex = bool(robots and "noindex" in (robots.get("content") or "").lower())
    has_images = soup.find("img") is not None

    text_soup = BeautifulSoup(html, "html.parser")
    for tag in text_soup.find_all(["script", "style"]):
        tag.decompose()
    text = " ".join(text_soup.get_text(" ").split())
    word_count = sum(1 for word in text.split() if len(word) > 2)
    if word_count < 100:
        content -= 20
        content_issues.append("Very thin content (low word count)")
        recommendations.append(_recommendation(
            "medium", "Content", "Add more descriptive content",
            "Thin content hurts Quality Score and conversions"))

    # Relevance
    relevance = analyze_keyword_relevance(text, title, h1s, keywords)
    if keywords and relevance["score"] < 50:
        recommendations.append(_recommendation(
            "high", "Relevance", f"Missing keywords: {', '.join(relevance['missing_keywords'][:3])}",
            "Low keyword relevance hurts Quality Score"))

    # Calls to action
    ctas = find_ctas(text, soup)
    cta_issues = []
    if not ctas:
        cta = 30
        cta_issues.append("No clear call-to-action found")
        recommendations.append(_recommendation(
            "high", "Conversion", "Add a clear call-to-action button",
            "Pages without CTAs have very low conversion rates"))
    elif len(ctas) == 1:
        cta = 80
    else:
        cta = 100

    # Security
    security_issues = []
    security = 100 if has_ssl else 0
    mixed_content = has_ssl and "http://" in html and "http://schema" not in html
    if not has_ssl:
        security_issues.append("No SSL certificate (HTTP only)")
        recommendations.append(_recommendation(
            "high", "Security", "Enable HTTPS for your landing page",
            "Google penalizes non-HTTPS pages, browsers show warnings"))
    if mixed_content:
        security -= 20
        security_issues.append("Possible mixed content (HTTP resources on HTTPS page)")

    scores = {
        "speed": int(clamp(speed, 0, 100)),
        "mobile": int(clamp(mobile, 0, 100)),
        "content": int(clamp(content, 0, 100)),
        "relevance": relevance["score"],
        "cta": cta,
        "security": int(clamp(security, 0, 100)),
    }
    overall = round_half_up(sum(scores[name] * weight for name, weight in WEIGHTS.items()))
    recommendations.sort(key=lambda r: PRIORITY_ORDER[r["priority"]])

    return {
        "url": url,
        "overall_score": int(clamp(overall, 0, 100)),
        "authority": authority,
        "speed": {"score": scores["speed"], "load_time": round_half_up(load_time, 2), "ttfb": ttfb_ms,
                  "script_count": script_count, "issues": speed_issues},
        "mobile": {"score": scores["mobile"], "is_responsive": is_responsive, "has_viewport": has_viewport,
                   "small_fonts": small_fonts, "issues": mobile_issues},
        "content": {"score": scores["content"], "title": title, "description": description, "h1": h1s,
                    "word_count": word_count, "has_images": has_images, "structured_data": structured_data,
                    "og_tags": og_tags, "hreflang": hreflang, "noindex": noindex, "issues": content_issues},
        "relevance": relevance,
        "cta": {"score": cta, "found": ctas, "issues": cta_issues},
        "security": {"score": scores["security"], "has_ssl": has_ssl, "mixed_content": mixed_content,
                     "issues": security_issues},
        "recommendations": recommendations,
        "analyzed_at": datetime.utcnow().isoformat(),
    }


def failed_result(url: str, keywords: List[str], error: str) -> Dict:
    has_ssl = url.startswith("https")
    return {
        "url": url,
        "overall_score": 0,
        "error": f"Could not fetch page: {error}",
        "speed": {"score": 0, "load_time": 0, "ttfb": 0, "issues": [f"Failed to load: {error}"]},
        "mobile": {"score": 0, "is_responsive": False, "has_viewport": False, "issues": ["Could not analyze"]},
        "content": {"score": 0, "title": "", "description": "", "h1": [], "word_count": 0,
                    "has_images": False, "issues": ["Could not analyze"]},
        "relevance": {"score": 0, "matched_keywords": [], "missing_keywords": list(keywords),
                      "keyword_density": {}},
        "cta": {"score": 0, "found": [], "issues": ["Could not analyze"]},
        "security": {"score": 50 if has_ssl else 0, "has_ssl": has_ssl,
                     "issues": [] if has_ssl else ["No SSL certificate"]},
        "recommendations": [_recommendation(
            "high", "Accessibility", "Page could not be loaded", "Users cannot access your landing page")],
        "analyzed_at": datetime.utcnow().isoformat(),
    }


class LandingPageAnalyzer:

    def __init__(self, moz: Optional[MozConnector] = None):
        self.moz = moz or MozConnector()

    async def fetch(self, url: str):
        """Returns (html, load_time_seconds, ttfb_ms)"""
        started = time.monotonic()
        async with httpx.AsyncClient(follow_redirects=True, timeout=FETCH_TIMEOUT_SECONDS) as client:
            async with client.stream(
                "GET", url,
                headers={"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml"},
            ) as response:
                ttfb_ms = int((time.monotonic() - started) * 1000)
                response.raise_for_status()
                body = await response.aread()
                html = body.decode(response.encoding or "utf-8", errors="replace")
        return html, time.monotonic() - started, ttfb_ms

    async def get_moz_metrics(self, url: str) -> Optional[Dict]:
        if not self.moz.is_configured:
            return None
        try:
            results = await self.moz.fetch_url_metrics([url])
        except ConnectorError as e:
            log.warning(f"Moz authority lookup failed for {url}: {e}")
            return None
        return results[0] if results else None

    async def analyze(self, url: str, keywords: Optional[List[str]] = None) -> Dict:
        url = normalize_url(url)
        keywords = [k.strip() for k in keywords or [] if k and k.strip()]
        log.info(f"Analyzing landing page: {url}")

        try:
            html, load_time, ttfb_ms = await self.fetch(url)
        except httpx.TimeoutException:
            return failed_result(url, keywords, f"Timeout (>{FETCH_TIMEOUT_SECONDS}s)")
        except httpx.HTTPStatusError as e:
            return failed_result(url, keywords, f"HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            log.error(f"Landing page fetch failed for {url}: {e}")
            return failed_result(url, keywords, str(e) or e.__class__.__name__)

        if not html:
            return failed_result(url, keywords, "Empty response")

        moz_metrics = await self.get_moz_metrics(url)
        result = analyze_html(html, url, keywords, load_time, ttfb_ms, url.startswith("https"), moz_metrics)
        if not moz_metrics and not self.moz.is_configured:
            result["authority"]["issues"].append("Moz API not configured - showing estimates")
        return result

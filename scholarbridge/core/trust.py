"""Trust rules every scholarship must satisfy before it may be stored.

This is the single home of the blocked-domain list. The candidate validator,
the merge step, and the repository read/write paths all call these
predicates instead of keeping their own copies.
"""

from __future__ import annotations

from urllib.parse import urlparse

MIN_TITLE_LENGTH = 10
MIN_ORGANIZATION_LENGTH = 3
MIN_DESCRIPTION_LENGTH = 50

BLOCKED_DOMAINS = frozenset(
    {
        # scholarship aggregators
        "scholarshiptab.com",
        "studentscholarships.org",
        "scholarshipnext.com",
        "scholaropportunity.com",
        "scholarships.com",
        "fastweb.com",
        "scholarshipowl.com",
        "scholarshipportal.com",
        "findaid.org",
        "internationalscholarships.com",
        "scholars4dev.com",
        "afterschool.my",
        "opportunitiesforafricans.com",
        "oyaop.com",
        "aseanop.com",
        "marj3.com",
        "opportunitydesk.org",
        "scholarshipsads.com",
        "scholarshipscorner.website",
        "grantfinder.com",
        "scholarshipslab.com",
        "uscholarships.us",
        "scholarshipau.com",
        "happyfacetravels.com",
        "worldscholarshipforum.com",
        "scholarshipscafe.com",
        "scholarsme.com",
        "myschoolscholarship.com",
        # social networks
        "facebook.com",
        "twitter.com",
        "x.com",
        "linkedin.com",
        "instagram.com",
        "youtube.com",
        "tiktok.com",
        "reddit.com",
        "quora.com",
        "pinterest.com",
        # blogs, wikis, news
        "medium.com",
        "wordpress.com",
        "blogspot.com",
        "tumblr.com",
        "substack.com",
        "wikipedia.org",
        "wikidata.org",
        "bbc.com",
        "cnn.com",
        "theguardian.com",
        # sandbox / test
        "example.com",
        "example.org",
        "test.com",
        "localhost",
    }
)


def is_trusted_link(url: str | None) -> bool:
    """Return True when ``url`` looks like a direct, official application page."""
    if not url or not url.strip():
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False

    if parsed.scheme.lower() not in {"http", "https"}:
        return False

    host = _normalized_host(parsed.hostname)
    if not host or is_blocked_host(host):
        return False

    return not parsed.path.lower().endswith(".pdf")


def is_blocked_host(host: str) -> bool:
    normalized = _normalized_host(host)
    if not normalized:
        return False
    return any(normalized == blocked or normalized.endswith(f".{blocked}") for blocked in BLOCKED_DOMAINS)


def is_substantive(text: str | None, min_length: int) -> bool:
    if not isinstance(text, str):
        return False
    return len(text.strip()) >= min_length


def _normalized_host(host: str | None) -> str:
    if not host:
        return ""
    normalized = host.strip().lower().rstrip(".")
    if normalized.startswith("www."):
        normalized = normalized[4:]
    return normalized

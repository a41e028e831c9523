from __future__ import annotations

import pytest

from scholarbridge.core.trust import is_blocked_host, is_substantive, is_trusted_link


@pytest.mark.parametrize(
    "url",
    [
        "https://www.daad.de/en/study-and-research-in-germany/scholarships/",
        "http://scholarships.ox.ac.uk/clarendon",
        "https://www.chevening.org/scholarships/",
        "https://mit.edu/apply",
        "https://grad.stanford.edu/funding/knight-hennessy?year=2027",
    ],
)
def test_trusted_links_accept_official_pages(url: str) -> None:
    assert is_trusted_link(url) is True


@pytest.mark.parametrize(
    "url",
    [
        "https://www.scholarships.com/financial-aid/college-scholarships/",
        "https://fastweb.com/college-scholarships",
        "https://mba.scholarships.com/apply",
        "https://www.facebook.com/groups/scholarships",
        "https://en.wikipedia.org/wiki/Fulbright_Program",
        "https://someone.blogspot.com/2026/01/funding.html",
        "https://www.example.com/apply",
        "http://localhost:8000/apply",
        "https://university.edu/files/brochure.PDF",
        "ftp://university.edu/scholarships",
        "not a url",
        "",
        None,
    ],
)
def test_untrusted_links_are_rejected(url: str | None) -> None:
    assert is_trusted_link(url) is False


def test_blocked_host_matching_is_exact_or_subdomain() -> None:
    assert is_blocked_host("WWW.Medium.com") is True
    assert is_blocked_host("blog.medium.com") is True
    assert is_blocked_host("notmedium.com") is False
    assert is_blocked_host("") is False


def test_substantive_text_ignores_surrounding_whitespace() -> None:
    assert is_substantive("  Rhodes Trust  ", 10) is True
    assert is_substantive("   short   ", 10) is False
    assert is_substantive(None, 1) is False

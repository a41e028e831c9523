"""Regional query batches; each fetch cycle uses the next batch in turn."""

from __future__ import annotations

from datetime import date

SEARCH_QUERY_SETS: tuple[tuple[str, ...], ...] = (
    # US, UK, Australia, Canada
    (
        "site:.edu OR site:.ac.uk scholarships international students {year} apply now",
        "site:.gov.au OR site:.gc.ca scholarships {year} international students",
        "official university scholarships USA {year} application open international students",
        "UK Russell Group university scholarships {year} international apply",
    ),
    # Europe
    (
        "site:daad.de scholarships {year} international students",
        "Netherlands universities scholarships {year} non-EU students official",
        "Sweden SI scholarships {year} official application",
        "France Campus France Eiffel Excellence scholarship {year}",
    ),
    # Asia
    (
        "site:jasso.go.jp OR MEXT scholarship {year} official application",
        "site:.ac.kr KGSP GKS scholarship {year} application",
        "CSC scholarship China {year} official application international",
        "Turkiye Burslari scholarship {year} official apply",
    ),
    # specialised
    (
        "STEM scholarships women {year} official university apply",
        "fully funded PhD scholarships {year} official university application",
        "need-based scholarships developing countries {year} official",
        "athletic scholarships NCAA universities {year} official",
    ),
    # major international programmes
    (
        "Fulbright scholarship {year} official application site:fulbrightonline.org OR site:cies.org",
        "Chevening scholarship {year} official site:chevening.org",
        "Erasmus Mundus Joint Master {year} official site:ec.europa.eu OR site:eacea.ec.europa.eu",
        "Commonwealth scholarship {year} official site:cscuk.fcdo.gov.uk",
    ),
)


def total_batches() -> int:
    return len(SEARCH_QUERY_SETS)


def batch_number(run_index: int) -> int:
    """1-based batch number used in provenance strings."""
    return run_index % total_batches() + 1


def get_search_queries(run_index: int, *, year: int | None = None) -> list[str]:
    target_year = year if year is not None else date.today().year
    batch = SEARCH_QUERY_SETS[run_index % total_batches()]
    return [query.format(year=target_year) for query in batch]

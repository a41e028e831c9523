#!/usr/bin/env python3
"""Print stored scholarships whose descriptions look thin or generic.

With ``--check-links`` every stored link is requested again and dead ones
are listed as well.
"""

from __future__ import annotations

import argparse
import asyncio

from scholarbridge.core.config import get_settings
from scholarbridge.services.audit import AuditReport, DeadLink, audit_records, find_dead_links
from scholarbridge.services.link_verifier import LinkVerifier
from scholarbridge.services.repository import get_repository


def render_report(report: AuditReport, *, preview_chars: int = 100, dead_links: list[DeadLink] | None = None) -> str:
    lines = [f"=== auditing {report.total} scholarships for description quality ===", ""]
    for finding in report.findings:
        record = finding.record
        lines.extend(
            [
                f"- {record.title}",
                f"  organization: {record.organization}",
                f"  link: {record.link}",
                f"  issues: {', '.join(finding.issues)}",
                f"  verified: {str(record.is_verified).lower()}",
                f'  description: "{record.description[:preview_chars]}..."',
                "",
            ]
        )
    if dead_links is not None:
        lines.append("=== dead links ===")
        for dead in dead_links:
            status = dead.result.status_code if dead.result.status_code is not None else "-"
            lines.append(f"- {dead.record.title}: {dead.record.link} ({dead.result.reason}, status {status})")
        lines.append("")
    lines.extend(
        [
            "=== summary ===",
            f"total scholarships: {report.total}",
            f"with issues: {len(report.findings)}",
            f"verified: {report.verified}",
        ]
    )
    if dead_links is not None:
        lines.append(f"dead links: {len(dead_links)}")
    return "\n".join(lines)


async def _load_report(*, check_links: bool) -> tuple[AuditReport, list[DeadLink] | None]:
    settings = get_settings()
    repository = get_repository()
    try:
        records = await repository.list_all_scholarships()
    finally:
        await repository.close()

    dead_links = None
    if check_links:
        verifier = LinkVerifier(
            timeout_seconds=settings.link_check_timeout_seconds,
            concurrency=settings.link_check_concurrency,
            user_agent=settings.link_check_user_agent,
        )
        dead_links = await find_dead_links(records, verifier)
    return audit_records(records), dead_links


def main() -> None:
    parser = argparse.ArgumentParser(description="Audit stored scholarship descriptions.")
    parser.add_argument(
        "--preview-chars",
        type=int,
        default=100,
        help="How many description characters to print per flagged record",
    )
    parser.add_argument("--check-links", action="store_true", help="Also request every stored link and list dead ones")
    args = parser.parse_args()
    report, dead_links = asyncio.run(_load_report(check_links=args.check_links))
    print(render_report(report, preview_chars=args.preview_chars, dead_links=dead_links))


if __name__ == "__main__":
    main()

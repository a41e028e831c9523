from __future__ import annotations

import argparse
import asyncio
import logging
import random

from scholarbridge.core.config import get_settings
from scholarbridge.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from scholarbridge.jobs.fetch_cycle import get_fetch_cycle_controller
from scholarbridge.services.providers.registry import ProviderConfig, available_providers
from scholarbridge.services.repository import get_repository

logger = logging.getLogger(__name__)


def describe_providers(config: ProviderConfig) -> str:
    parts = []
    for entry in available_providers(config):
        state = "configured" if entry["configured"] else "no key"
        marker = " (current)" if entry["current"] else ""
        parts.append(f"{entry['provider']}={state}{marker}")
    return ", ".join(parts)


async def run_scheduler(*, once: bool = False) -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    telemetry_runtime = setup_telemetry(settings, component="scheduler")
    repository = get_repository()
    controller = get_fetch_cycle_controller()
    provider_config = ProviderConfig.from_settings(settings)
    logger.info("search providers: %s", describe_providers(provider_config))
    if not provider_config.has_key(provider_config.provider):
        logger.error(
            "search provider %s has no API key; fetch runs will be recorded as failed until one is set",
            provider_config.provider,
        )

    backoff = float(settings.initial_delay_seconds) or 1.0
    try:
        await repository.ensure_schema()
        if settings.initial_delay_seconds and not once:
            logger.info("first fetch cycle in %ss", settings.initial_delay_seconds)
            await asyncio.sleep(settings.initial_delay_seconds)

        while True:
            try:
                outcome = await controller.run_fetch_cycle()
                logger.info(
                    "scheduled fetch cycle finished status=%s found=%s added=%s",
                    outcome.status,
                    outcome.found,
                    outcome.added,
                )
                if once:
                    return
                backoff = float(settings.initial_delay_seconds) or 1.0
                await asyncio.sleep(settings.fetch_interval_seconds)
            except Exception as exc:  # pragma: no cover - bootstrap robustness
                if once:
                    raise
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.exception("scheduler iteration failed: %s; retry in %.1fs", exc, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
    finally:
        await repository.close()
        shutdown_telemetry(telemetry_runtime)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the scholarship fetch scheduler.")
    parser.add_argument("--once", action="store_true", help="run a single fetch cycle and exit")
    args = parser.parse_args(argv)
    asyncio.run(run_scheduler(once=args.once))


if __name__ == "__main__":
    main()

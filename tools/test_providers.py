#!/usr/bin/env python3
"""
Smoke-test every LLM provider the agent can use.

For each provider: report whether it is configured, then send a short probe
message and print latency plus the start of the reply.

Usage:
    python tools/test_providers.py
    python tools/test_providers.py --provider claude
"""

import argparse
import asyncio
import sys
import time
from pathlib import Path

# Add src to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from flux.core.config import setup_logging
from nanocoder.models import PROVIDER_FALLBACK_ORDER, ProviderFactory

PROBE_MESSAGE = "Reply with one short sentence confirming you can hear me."


async def probe(factory: ProviderFactory, provider_id: str) -> bool:
    provider = factory.get(provider_id)
    if not provider.is_configured():
        print(f"  {provider_id:<8} not configured")
        return True

    started = time.perf_counter()
    result = await provider.chat(PROBE_MESSAGE)
    elapsed = time.perf_counter() - started
    if not result.ok:
        print(f"  {provider_id:<8} FAILED ({result.error.kind}) {result.error.message}")
        return False

    print(f"  {provider_id:<8} ok  {provider.get_model()}  {elapsed:.2f}s  {result.response[:100]!r}")
    return True


async def run(provider_ids) -> int:
    factory = ProviderFactory()
    print("Provider check:")
    results = [await probe(factory, provider_id) for provider_id in provider_ids]
    return 0 if all(results) else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Smoke-test configured LLM providers.")
    parser.add_argument(
        "--provider",
        choices=PROVIDER_FALLBACK_ORDER,
        help="Only test this provider",
    )
    args = parser.parse_args()

    setup_logging("nanocoder")
    provider_ids = [args.provider] if args.provider else list(PROVIDER_FALLBACK_ORDER)
    return asyncio.run(run(provider_ids))


if __name__ == "__main__":
    sys.exit(main())

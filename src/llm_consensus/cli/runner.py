from __future__ import annotations

import argparse
import asyncio
from collections.abc import Mapping, Sequence
import sys

from ..config import GatewayConfig
from ..gateway import ConsensusGateway, SubmitResult
from ..observability import StdLogger
from ..provider_spi import ProviderSPI, Task
from ..providers.factory import create_providers, ProviderFactory
from .args import parse_args
from .config import build_gateway_config, configure_logging, load_env_file
from .io import build_task, format_output


def prepare_execution(
    args: argparse.Namespace,
    *,
    factories: Mapping[str, ProviderFactory] | None = None,
) -> tuple[ConsensusGateway, Task, list[ProviderSPI]]:
    load_env_file(args.env)
    config: GatewayConfig = build_gateway_config(args)
    providers = create_providers(config.providers, factories=factories)
    task = build_task(args)
    trace = StdLogger() if args.trace_events else None
    gateway = ConsensusGateway.from_config(config, logger=trace)
    return gateway, task, providers


async def _execute(
    gateway: ConsensusGateway, task: Task, providers: Sequence[ProviderSPI]
) -> SubmitResult:
    try:
        return await gateway.submit(task.session_key, task, providers)
    finally:
        await gateway.drain()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.json_logs)
    try:
        gateway, task, providers = prepare_execution(args)
        result = asyncio.run(_execute(gateway, task, providers))
    except Exception as exc:  # noqa: BLE001
        print(f"Execution failed: {exc}", file=sys.stderr)
        return 1
    print(format_output(result, args.out_format))
    return 0


__all__ = ["prepare_execution", "main"]

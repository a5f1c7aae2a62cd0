"""Run the device agent loop."""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

from serra_device.agent import AgentContext, DeviceAgent
from serra_device.cli._helpers import add_common_args, configure_logging, load_cli_config
from serra_device.drivers import SensorBank, SimulatedValueSource
from serra_device.types import AgentMode

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="serra-agent",
        description="Run the heartbeat, config sync, telemetry and command loop.",
    )
    add_common_args(parser)
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the simulated sensor values",
    )
    parser.add_argument(
        "--max-ticks",
        type=int,
        default=None,
        help="Stop after this many loop iterations (default: run until interrupted)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    config = load_cli_config(args.config)
    LOGGER.info("Config loaded from %s (firmware %s)", config.source, config.firmware_version)

    context = AgentContext.from_config(config, sensors=SensorBank(SimulatedValueSource(args.seed)))
    agent = DeviceAgent(context)
    if agent.boot() is AgentMode.PROVISIONING:
        LOGGER.error("Device is not provisioned; run serra-provision --config %s first", config.source)
        return 2

    try:
        agent.run(max_ticks=args.max_ticks)
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; stopping agent")
        agent.stop()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

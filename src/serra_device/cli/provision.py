"""Write identity and WiFi credentials into the device record."""

from __future__ import annotations

import argparse
import getpass
import logging
from typing import Sequence

from serra_device.agent import AgentContext, DeviceAgent
from serra_device.cli._helpers import add_common_args, configure_logging, load_cli_config
from serra_device.errors import StorageWriteError

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="serra-provision",
        description="Provision the device with its composite id and network credentials.",
    )
    add_common_args(parser)
    parser.add_argument(
        "--device-id",
        required=True,
        help="Composite device id issued by the operator, e.g. PROJ1-ESP3",
    )
    parser.add_argument("--ssid", required=True, help="WiFi network name")
    parser.add_argument(
        "--password",
        default=None,
        help="WiFi password (prompted for when omitted)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    config = load_cli_config(args.config)

    password = args.password
    if password is None:
        password = getpass.getpass(f"Password for {args.ssid} (blank for open network): ")

    agent = DeviceAgent(AgentContext.from_config(config))
    agent.boot()
    try:
        record = agent.provision(args.device_id, args.ssid, password)
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return 2
    except StorageWriteError as exc:
        LOGGER.error("Could not save device record: %s", exc)
        return 1

    LOGGER.info("Stored record at %s for %s", config.storage_path, record.identity.composite_id)
    LOGGER.info("The first heartbeat will bind this device's key on the server")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

from __future__ import annotations

from pathlib import Path

import yaml

from serra_device.cli import agent as agent_cli
from serra_device.cli import provision as provision_cli
from serra_device.storage import RecordStore


def _config_file(tmp_path: Path) -> Path:
    data = {
        "server": {"base_url": "http://127.0.0.1:9", "timeout_ms": 200},
        "firmware_version": "3.2.0",
        "storage_path": str(tmp_path / "device.json"),
        "timing": {"loop_sleep_ms": 1},
        "actuators": [{"id": "relay_1", "type": "relay", "port": "D5"}],
    }
    path = tmp_path / "agent.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_agent_refuses_to_run_unprovisioned(tmp_path: Path) -> None:
    assert agent_cli.main(["--config", str(_config_file(tmp_path)), "--max-ticks", "1"]) == 2


def test_provision_writes_record(tmp_path: Path) -> None:
    config = _config_file(tmp_path)

    code = provision_cli.main(
        ["--config", str(config), "--device-id", "proj1-esp3", "--ssid", "greenhouse", "--password", "hunter22"]
    )

    assert code == 0
    record = RecordStore(tmp_path / "device.json").load()
    assert record.identity.composite_id == "PROJ1-ESP3"
    assert record.wifi_ssid == "greenhouse"


def test_provision_rejects_bad_device_id(tmp_path: Path) -> None:
    code = provision_cli.main(
        ["--config", str(_config_file(tmp_path)), "--device-id", "ESP3", "--ssid", "greenhouse", "--password", ""]
    )

    assert code == 2
    assert not (tmp_path / "device.json").exists()


def test_agent_runs_bounded_loop_when_server_is_down(tmp_path: Path) -> None:
    config = _config_file(tmp_path)
    provision_cli.main(["--config", str(config), "--device-id", "PROJ1-ESP3", "--ssid", "greenhouse", "--password", ""])

    assert agent_cli.main(["--config", str(config), "--seed", "1", "--max-ticks", "2"]) == 0

"""Shared fixtures for the klipper-config-mcp test suite."""

from __future__ import annotations

from typing import Any, Dict

import pytest

from klipper_config_mcp.moonraker import MoonrakerClient

# ---------------------------------------------------------------------------
# Constants reused across tests
# ---------------------------------------------------------------------------

TEST_HOST = "klipper.local"
TEST_PORT = 7125
TEST_BASE_URL = f"http://{TEST_HOST}:{TEST_PORT}"
TEST_API_KEY = "TESTAPIKEY123456"

PRINTER_CFG = """\
# Voron-ish printer.cfg
[include mainsail.cfg]
[include macros/*.cfg]

[mcu]
serial: /dev/serial/by-id/usb-Klipper_stm32f446xx-if00

[printer]
kinematics: corexy
max_velocity: 300
max_accel: 3000

[stepper_x]
step_pin: PF13
dir_pin: !PF12
enable_pin: !PF14
rotation_distance: 40
microsteps: 16
endstop_pin: ^PG6

[extruder]
nozzle_diameter: 0.4
max_temp: 270
pressure_advance: 0.05

[heater_bed]
heater_pin: PA1
control: watermark

[gcode_macro PRINT_START]
description: Start print

[bed_mesh]
mesh_min: 10, 10
mesh_max: 290, 290
fade_enable: True
"""


# ---------------------------------------------------------------------------
# Client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def client() -> MoonrakerClient:
    """Return a MoonrakerClient pre-configured for testing (1 retry, short timeout)."""
    return MoonrakerClient(host=TEST_HOST, port=TEST_PORT, timeout=5, retries=1)


@pytest.fixture()
def retry_client() -> MoonrakerClient:
    """Return a MoonrakerClient configured with 3 retries for retry-logic tests."""
    return MoonrakerClient(host=TEST_HOST, port=TEST_PORT, timeout=5, retries=3)


# ---------------------------------------------------------------------------
# Moonraker response payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def file_list_payload() -> Dict[str, Any]:
    """``GET /server/files/list?root=config`` response."""
    return {
        "result": [
            {"path": "printer.cfg", "modified": 1700000000.0, "size": 4096, "permissions": "rw"},
            {"path": "mainsail.cfg", "modified": 1690000000.0, "size": 2048, "permissions": "r"},
            {"path": "macros/start.cfg", "modified": 1695000000.0, "size": 512, "permissions": "rw"},
            {"path": "moonraker.conf", "modified": 1680000000.0, "size": 1024, "permissions": "rw"},
        ]
    }


@pytest.fixture()
def print_stats_payload() -> Dict[str, Any]:
    """``GET /printer/objects/query?print_stats`` response while printing."""
    return {
        "result": {
            "eventtime": 12345.6,
            "status": {
                "print_stats": {
                    "filename": "benchy.gcode",
                    "total_duration": 600.5,
                    "print_duration": 540.25,
                    "filament_used": 1234.567,
                    "state": "printing",
                    "message": "",
                    "info": {"total_layer": 120, "current_layer": 42},
                }
            },
        }
    }


@pytest.fixture()
def system_info_payload() -> Dict[str, Any]:
    """``GET /machine/system_info`` response."""
    return {
        "result": {
            "system_info": {
                "cpu_info": {"cpu_count": 4, "cpu_desc": "ARMv7 Processor", "model": "Raspberry Pi 4"},
                "distribution": {"name": "Debian GNU/Linux 11 (bullseye)", "version": "11"},
                "service_state": {
                    "klipper": {"active_state": "active", "sub_state": "running"},
                    "moonraker": {"active_state": "active", "sub_state": "running"},
                },
            }
        }
    }

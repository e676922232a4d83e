"""Statistics reports served by the API: stat1, detailed JSON and the HTML page."""

from __future__ import annotations

import math
import socket
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from phiminer.common_data import get_formatted_hashes, get_formatted_memory, to_hex_int

__all__ = [
    "SolutionStats",
    "Sensors",
    "MinerTelemetry",
    "MinerInfo",
    "FarmSnapshot",
    "miner_stat1",
    "miner_stat_detail_per_miner",
    "miner_stat_detail",
    "http_stat_page",
]

HTTP_HDR0_COLOR = "#e8e8e8"
HTTP_HDR1_COLOR = "#f0f0f0"
HTTP_ROW0_COLOR = "#f8f8f8"
HTTP_ROW1_COLOR = "#ffffff"
HTTP_ROWRED_COLOR = "#f46542"

_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF


def _default_host_name() -> str | None:
    try:
        return socket.gethostname()
    except OSError:
        return None


@dataclass
class SolutionStats:
    """Share counters and the monotonic time of the last found solution."""

    accepted: int = 0
    rejected: int = 0
    failed: int = 0
    tstamp: float = 0.0


@dataclass
class Sensors:
    """Hardware sensor readings of one device."""

    temp_c: int = 0
    fan_p: int = 0
    power_w: float = 0.0


@dataclass
class MinerTelemetry:
    """Hash rate, solutions and sensors for the farm or one miner."""

    hashrate: float = 0.0
    solutions: SolutionStats = field(default_factory=SolutionStats)
    sensors: Sensors = field(default_factory=Sensors)


@dataclass
class MinerInfo:
    """Descriptive state of one mining device."""

    index: int
    name: str = ""
    pci: str = ""
    cuda: bool = False
    device_type: str = "GPU"
    total_memory: int = 0
    paused: bool = False
    pause_reason: str = ""


@dataclass
class FarmSnapshot:
    """Everything the reports need, captured at one moment."""

    version: str
    start: float
    farm: MinerTelemetry = field(default_factory=MinerTelemetry)
    telemetry: list[MinerTelemetry] = field(default_factory=list)
    miners: list[MinerInfo] = field(default_factory=list)
    pool_host: str = ""
    pool_port: int = 0
    pool_uri: str = ""
    connected: bool = False
    switches: int = 0
    epoch: int = -1
    epoch_changes: int = 0
    difficulty: float = 0.0
    nonce_scrambler: int = 0
    segment_width: int = 32
    tstart: int = 0
    tstop: int = 0
    host_name: str | None = field(default_factory=_default_host_name)


def _now(now: float | None) -> float:
    return time.monotonic() if now is None else now


def _seconds_since(now: float, stamp: float) -> int:
    return max(0, int(now - stamp))


def _hex32(value: float) -> str:
    return to_hex_int(int(value) & _MASK32, True, 8)


def miner_stat1(snapshot: FarmSnapshot, now: float | None = None) -> list[str]:
    """Return the nine-field stat1 report."""
    now = _now(now)
    running_minutes = int(max(0.0, now - snapshot.start) // 60)
    farm = snapshot.farm

    total_eth = (
        f"{farm.hashrate / 1000.0:.0f};{farm.solutions.accepted};{farm.solutions.rejected}"
    )
    detailed_eth = ";".join(f"{miner.hashrate / 1000.0:.0f}" for miner in snapshot.telemetry)
    detailed_dcr = ";".join("off" for _ in snapshot.telemetry)
    temps_fans = ";".join(
        f"{miner.sensors.temp_c};{miner.sensors.fan_p}" for miner in snapshot.telemetry
    )
    invalid = f"{farm.solutions.failed};0;0;0"

    return [
        snapshot.version,
        str(running_minutes),
        total_eth,
        detailed_eth,
        "0;0;0",
        detailed_dcr,
        temps_fans,
        f"{snapshot.pool_host}:{snapshot.pool_port}",
        invalid,
    ]


def miner_stat_detail_per_miner(
    snapshot: FarmSnapshot, miner: MinerInfo, now: float | None = None
) -> dict[str, Any]:
    """Return the detailed report of one miner."""
    now = _now(now)
    index = miner.index
    telemetry = snapshot.telemetry[index]

    hardware = {
        "pci": miner.pci,
        "type": miner.device_type,
        "name": f"{miner.name} {get_formatted_memory(float(miner.total_memory))}",
        "sensors": [
            telemetry.sensors.temp_c,
            telemetry.sensors.fan_p,
            telemetry.sensors.power_w,
        ],
    }

    width = snapshot.segment_width
    start_nonce = (snapshot.nonce_scrambler + (index << width)) & _MASK64
    end_nonce = (start_nonce + (1 << width)) & _MASK64

    mining = {
        "shares": [
            telemetry.solutions.accepted,
            telemetry.solutions.rejected,
            telemetry.solutions.failed,
            _seconds_since(now, telemetry.solutions.tstamp),
        ],
        "paused": miner.paused,
        "pause_reason": miner.pause_reason if miner.paused else None,
        "segment": [to_hex_int(start_nonce, True), to_hex_int(end_nonce, True)],
        "hashrate": _hex32(telemetry.hashrate),
    }

    return {
        "_index": index,
        "_mode": "CUDA" if miner.cuda else "OpenCL",
        "hardware": hardware,
        "mining": mining,
    }


def miner_stat_detail(snapshot: FarmSnapshot, now: float | None = None) -> dict[str, Any]:
    """Return the full detailed report of the farm."""
    now = _now(now)
    farm = snapshot.farm

    host = {
        "version": snapshot.version,
        "runtime": int(max(0.0, now - snapshot.start)),
        "name": snapshot.host_name,
    }
    connection = {
        "uri": snapshot.pool_uri,
        "connected": snapshot.connected,
        "switches": snapshot.switches,
    }
    mining = {
        "hashrate": _hex32(farm.hashrate),
        "epoch": snapshot.epoch,
        "epoch_changes": snapshot.epoch_changes,
        "difficulty": snapshot.difficulty,
        "shares": [
            farm.solutions.accepted,
            farm.solutions.rejected,
            farm.solutions.failed,
            _seconds_since(now, farm.solutions.tstamp),
        ],
    }
    monitors = (
        {"temperatures": [snapshot.tstart, snapshot.tstop]} if snapshot.tstop else None
    )
    devices = [miner_stat_detail_per_miner(snapshot, miner, now) for miner in snapshot.miners]

    return {
        "devices": devices,
        "monitors": monitors,
        "connection": connection,
        "host": host,
        "mining": mining,
    }


def _json_text(value: Any) -> str:
    """Render a JSON scalar the way a JSON value's string conversion does."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return str(value)
        text = format(value, ".17g")
        if "." not in text and "e" not in text:
            text += ".0"
        return text
    return str(value)


_STYLE = (
    "<style>"
    "body{font-family:-apple-system,BlinkMacSystemFont,\"Segoe UI\",Roboto,"
    "\"Helvetica Neue\",Helvetica,Arial,sans-serif;font-size:16px;line-height:1.5;"
    "text-align:center;}"
    "table,td,th{border:1px inset #000;}"
    "table{border-spacing:0;}"
    "td,th{padding:3px;}"
    f"tbody tr:nth-child(even){{background-color:{HTTP_ROW0_COLOR};}}"
    f"tbody tr:nth-child(odd){{background-color:{HTTP_ROW1_COLOR};}}"
    ".mx-auto{margin-left:auto;margin-right:auto;}"
    f".bg-header1{{background-color:{HTTP_HDR1_COLOR};}}"
    f".bg-header0{{background-color:{HTTP_HDR0_COLOR};}}"
    f".bg-red{{color:{HTTP_ROWRED_COLOR};}}"
    ".right{text-align: right;}"
    "</style>"
)

_COLUMN_HEADERS = (
    "<tr class=bg-header0>"
    "<th>PCI</th>"
    "<th>Device</th>"
    "<th>Mode</th>"
    "<th>Paused</th>"
    "<th class=right>Hash Rate</th>"
    "<th class=right>Solutions</th>"
    "<th class=right>Temp.</th>"
    "<th class=right>Fan %</th>"
    "<th class=right>Power</th>"
    "</tr>"
)


def http_stat_page(detail: Mapping[str, Any]) -> str:
    """Render a detailed report as the HTML status page."""
    host = detail["host"]
    runtime = int(host["runtime"])
    hours, rest = divmod(runtime, 3600)
    minutes = rest // 60

    parts = [
        "<!doctype html>",
        "<html lang=en>",
        "<head>",
        "<meta charset=utf-8>",
        "<meta http-equiv=\"refresh\" content=\"30\">",
        f"<title>{_json_text(host.get('name'))}</title>",
        _STYLE,
        "<meta http-equiv=refresh content=30>",
        "</head>",
        "<body>",
        "<table class=mx-auto>",
        "<thead>",
        "<tr class=bg-header1>",
        f"<th colspan=9>{_json_text(host['version'])} - {hours}:{minutes:02d}",
        f"<br>Pool: {_json_text(detail['connection']['uri'])}</th>",
        "</tr>",
        _COLUMN_HEADERS,
        "</thead><tbody>",
    ]

    total_hashrate = 0.0
    total_power = 0.0
    total_solutions = 0

    for device in detail["devices"]:
        mining = device["mining"]
        hardware = device["hardware"]
        sensors = hardware["sensors"]
        hashrate = float(int(mining["hashrate"], 16))
        total_hashrate += hashrate
        total_power += float(sensors[2])
        total_solutions += int(mining["shares"][0])

        paused = bool(mining["paused"])
        parts.append("<tr" + (' class="bg-red"' if paused else "") + ">")
        parts.append(f"<td>{_json_text(hardware['pci'])}</td>")
        parts.append(f"<td>{_json_text(hardware['name'])}</td>")
        parts.append(f"<td>{_json_text(device['_mode'])}</td>")
        reason = _json_text(mining["pause_reason"]) if paused else "No"
        parts.append(f"<td>{reason}</td>")
        parts.append(f"<td class=right>{get_formatted_hashes(hashrate)}</td>")
        parts.append(f"<td class=right>{_json_text(mining['shares'][0])}</td>")
        parts.append(f"<td class=right>{_json_text(sensors[0])}</td>")
        parts.append(f"<td class=right>{_json_text(sensors[1])}</td>")
        parts.append(f"<td class=right>{_json_text(sensors[2])}</td>")
        parts.append("</tr>")
    parts.append("</tbody>")

    parts.append(
        "<tfoot><tr class=bg-header0><td colspan=4 class=right>Total</td><td class=right>"
        f"{get_formatted_hashes(total_hashrate)}</td><td class=right>{total_solutions}"
        f"</td><td colspan=3 class=right>{total_power:.2f}</td></tfoot>"
    )
    parts.append("</table></body></html>")
    return "".join(parts)
"""
providers/systemd.py

Comandos y parsers de systemd / procfs compartidos por el provider local
(Linux) y el provider SSH. Acá no se ejecuta nada directamente: los comandos
corren con el runner que pasa cada provider.
"""

import shlex
from typing import Callable, Dict, List, Tuple

from ..checks.base import ProviderError, ServiceInfo

SHOW_PROPS = "LoadState,ActiveState,SubState,MainPID,Result"

UNIT_SUFFIXES = (
    ".service", ".socket", ".timer", ".target", ".mount", ".automount",
    ".path", ".slice", ".scope", ".swap", ".device",
)
GLOB_CHARS = "*?["


def is_glob(name: str) -> bool:
    return any(c in name for c in GLOB_CHARS)


def unit_name(name: str) -> str:
    # "ssh" -> "ssh.service"; list-units/show matchean contra el id completo
    if name.endswith(UNIT_SUFFIXES):
        return name
    return f"{name}.service"


def list_units_cmd(pattern: str) -> List[str]:
    return ["systemctl", "list-units", "--all", "--plain", "--no-legend", "--type=service", unit_name(pattern)]


def show_cmd(unit: str) -> List[str]:
    return ["systemctl", "show", unit, "-p", SHOW_PROPS]


def as_shell(cmd: List[str]) -> str:
    return " ".join(shlex.quote(c) for c in cmd)


def lookup(name: str, run: Callable[[List[str]], str]) -> ServiceInfo:
    """
    Resuelve un servicio con systemctl.

    Nombre exacto: systemctl show sobre la unit (LoadState=not-found => no
    instalada). Así una unit instalada pero deshabilitada / no cargada se
    reporta como detenida y no como inexistente. Solo un patrón glob puede
    devolver más de una unit.
    """
    if is_glob(name):
        units = parse_unit_list(run(list_units_cmd(name)))
        if len(units) != 1:
            return service_info(units, {})
        unit = units[0]
    else:
        unit = unit_name(name)
    return service_info([unit], parse_show(run(show_cmd(unit))))


def parse_unit_list(text: str) -> List[str]:
    units = []
    for line in text.splitlines():
        parts = line.split()
        # algunas versiones marcan las units falladas con "●"
        if parts and parts[0] == "●":
            parts = parts[1:]
        if len(parts) < 2:
            continue
        if parts[1] == "not-found":
            continue
        units.append(parts[0])
    return units


def parse_show(text: str) -> Dict[str, str]:
    props = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            props[key.strip()] = value.strip()
    return props


def service_info(units: List[str], props: Dict[str, str]) -> ServiceInfo:
    if not units:
        return ServiceInfo(found=False, count=0)
    if len(units) > 1:
        return ServiceInfo(found=True, count=len(units))

    if props.get("LoadState") == "not-found":
        return ServiceInfo(found=False, count=0)

    active = props.get("ActiveState", "")
    sub = props.get("SubState", "")
    if active == "active" and sub == "running":
        state = "Running"
    else:
        state = (sub or active or "unknown").title()

    result = props.get("Result", "")
    status = "OK" if result == "success" else (result or "unknown")

    try:
        pid = int(props.get("MainPID") or 0)
    except ValueError:
        pid = 0

    return ServiceInfo(found=True, count=1, state=state, status=status, process_id=pid or None)


def parse_proc_stat(text: str) -> Tuple[int, int]:
    """
    Devuelve (ticks_cpu, page_faults) desde /proc/PID/stat.

    El campo comm va entre paréntesis y puede tener espacios, por eso se
    corta en el último ")". Después: state es el campo 3, minflt 10,
    majflt 12, utime 14, stime 15.
    """
    _, sep, rest = text.rpartition(")")
    fields = rest.split()
    if not sep or len(fields) < 13:
        raise ProviderError(f"/proc/PID/stat no parseable: {text[:80]!r}")
    minflt, majflt = int(fields[7]), int(fields[9])
    utime, stime = int(fields[11]), int(fields[12])
    return utime + stime, minflt + majflt


def parse_private_kb(text: str) -> int:
    # suma Private_Clean + Private_Dirty (kB) de smaps_rollup
    total = 0
    for line in text.splitlines():
        if line.startswith("Private_"):
            parts = line.split()
            if len(parts) >= 2 and parts[1].isdigit():
                total += int(parts[1])
    return total

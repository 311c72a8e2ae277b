"""
checks/service_check.py

Check de un servicio del sistema operativo:
- Consulta el servicio al provider (local o SSH)
- Resuelve el proceso y samplea CPU / memoria privada / page faults
- Evalúa reglas en orden fijo, gana la primera que matchea
- Devuelve CheckResult (OK / WARNING / CRITICAL / UNKNOWN)

Importante:
- evaluate() no hace I/O y nunca lanza excepción
- Los errores del provider se traducen a UNKNOWN, no se propagan
"""

import logging
from typing import Callable, List, Optional, Tuple

from .base import (
    CheckResult,
    ProviderError,
    ServiceObservation,
    Severity,
    ThresholdConfig,
)

log = logging.getLogger("svc_monitoring.checks.service_check")

BYTES_PER_MB = 1024 * 1024

Rule = Tuple[Callable[[ServiceObservation, ThresholdConfig], bool], Severity, Callable[[ServiceObservation], str]]


# ---------------------------------------------------------------------
# Performance data
# ---------------------------------------------------------------------

def _fmt_threshold(value: Optional[float]) -> str:
    # umbral deshabilitado -> vacío, nunca "0"
    return "" if value is None else str(value)


def build_summary(obs: ServiceObservation, th: ThresholdConfig) -> str:
    mem = f"{obs.memory_megabytes:.2f}"
    human = (
        f"State: {obs.state}, CPU Utilization: {obs.cpu_percent}%, "
        f"Memory Utilization: {mem}MB, Faults: {obs.page_faults_per_sec}"
    )
    perf = (
        f"cpu={obs.cpu_percent}%;{_fmt_threshold(th.cpu_warn)};{_fmt_threshold(th.cpu_crit)};0;100 "
        f"memory={mem}MB;{_fmt_threshold(th.mem_warn)};{_fmt_threshold(th.mem_crit)};; "
        f"faults={obs.page_faults_per_sec};{_fmt_threshold(th.fault_warn)};{_fmt_threshold(th.fault_crit)};;"
    )
    return f"{human}|{perf}"


# ---------------------------------------------------------------------
# Reglas
# ---------------------------------------------------------------------

def _breach(counter: Optional[float], threshold: Optional[float]) -> bool:
    return threshold is not None and counter is not None and counter >= threshold


def _counters_missing(obs: ServiceObservation) -> bool:
    return obs.cpu_percent is None or obs.memory_megabytes is None or obs.page_faults_per_sec is None


RULES: List[Rule] = [
    (lambda o, t: not o.exists, Severity.CRITICAL,
     lambda o: f"Could not find an installed service identified by {o.name}"),
    (lambda o, t: not o.is_unique, Severity.CRITICAL,
     lambda o: f"Multiple services by the name of {o.name} returned"),
    (lambda o, t: (o.state or "").lower() != "running", Severity.CRITICAL,
     lambda o: f"{o.name} is not running"),
    (lambda o, t: (o.status or "").lower() != "ok", Severity.CRITICAL,
     lambda o: f"{o.name} status is {o.status}"),
    (lambda o, t: not o.process_name, Severity.UNKNOWN,
     lambda o: f"Could not find the process name for {o.name}"),
    (lambda o, t: _counters_missing(o), Severity.UNKNOWN,
     lambda o: f"Could not read performance counters for {o.name}"),
]

# crit antes que warn dentro de cada dimensión
THRESHOLD_RULES = [
    (lambda o, t: _breach(o.cpu_percent, t.cpu_crit), Severity.CRITICAL),
    (lambda o, t: _breach(o.cpu_percent, t.cpu_warn), Severity.WARNING),
    (lambda o, t: _breach(o.memory_megabytes, t.mem_crit), Severity.CRITICAL),
    (lambda o, t: _breach(o.memory_megabytes, t.mem_warn), Severity.WARNING),
    (lambda o, t: _breach(o.page_faults_per_sec, t.fault_crit), Severity.CRITICAL),
    (lambda o, t: _breach(o.page_faults_per_sec, t.fault_warn), Severity.WARNING),
]


def evaluate(obs: ServiceObservation, thresholds: ThresholdConfig) -> CheckResult:
    for predicate, severity, message in RULES:
        if predicate(obs, thresholds):
            return CheckResult(severity, message(obs))

    summary = build_summary(obs, thresholds)
    for predicate, severity in THRESHOLD_RULES:
        if predicate(obs, thresholds):
            return CheckResult(severity, summary)

    return CheckResult(Severity.OK, summary)


# ---------------------------------------------------------------------
# Observación
# ---------------------------------------------------------------------

def collect(provider, name: str) -> ServiceObservation:
    """
    Arma la ServiceObservation llamando al provider en secuencia.

    Se corta apenas el servicio no pasa las validaciones básicas: no tiene
    sentido samplear counters de un servicio detenido. ProviderError de
    lookup_service se propaga; el resto queda como campo vacío.
    """
    info = provider.lookup_service(name)
    log.debug(
        f"SERVICE | name={name} found={info.found} count={info.count} "
        f"state={info.state} status={info.status} pid={info.process_id}"
    )

    base = dict(
        name=name,
        exists=info.found,
        is_unique=info.count <= 1,
        state=info.state,
        status=info.status,
        process_id=info.process_id,
    )

    healthy = (
        info.found
        and info.count <= 1
        and (info.state or "").lower() == "running"
        and (info.status or "").lower() == "ok"
    )
    if not healthy or not info.process_id:
        return ServiceObservation(**base)

    try:
        process_name = provider.resolve_process_name(info.process_id)
    except ProviderError as e:
        log.warning(f"PROCESS_EXC | name={name} pid={info.process_id} err={e}")
        process_name = None

    if not process_name:
        return ServiceObservation(**base)

    try:
        sample = provider.sample_counters(process_name, info.process_id)
    except ProviderError as e:
        log.warning(f"COUNTERS_EXC | name={name} process={process_name} err={e}")
        return ServiceObservation(process_name=process_name, **base)

    return ServiceObservation(
        process_name=process_name,
        cpu_percent=int(round(sample.cpu_percent)),
        memory_megabytes=sample.memory_bytes / BYTES_PER_MB,
        page_faults_per_sec=int(round(sample.page_faults_per_sec)),
        **base,
    )


def run(provider, name: str, thresholds: ThresholdConfig) -> CheckResult:
    try:
        obs = collect(provider, name)
    except ProviderError as e:
        log.error(f"LOOKUP_EXC | name={name} err={e}")
        return CheckResult(Severity.UNKNOWN, f"Could not query service {name}: {e}")

    result = evaluate(obs, thresholds)
    log.info(f"CHECK_DONE | name={name} status={result.severity.name}")
    return result

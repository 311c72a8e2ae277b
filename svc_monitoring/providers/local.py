"""
providers/local.py

Provider de métricas para el host local.

- Windows: Win32_Service vía WMI (State / Status / ProcessId)
- Linux  : systemctl show (list-units solo para patrones glob)
- Counters con psutil en ambos casos (CPU normalizada por cantidad de CPUs,
  working set privado, page faults/seg)
"""

import logging
import subprocess
import time
from pathlib import Path
from typing import List, Optional

import psutil

from ..checks.base import CounterSample, ProviderError, ServiceInfo
from ..config import SAMPLE_INTERVAL
from . import systemd

log = logging.getLogger("svc_monitoring.providers.local")


def _run(cmd: List[str], timeout: int = 15) -> str:
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ProviderError(f"No pude ejecutar {cmd[0]}: {e}") from e

    if proc.returncode != 0:
        raise ProviderError(f"{' '.join(cmd)} falló (exit_code={proc.returncode}): {proc.stderr.strip()}")
    return proc.stdout


def _private_bytes(proc: psutil.Process) -> float:
    try:
        mem = proc.memory_full_info()
    except psutil.AccessDenied:
        mem = proc.memory_info()
    for field in ("uss", "private", "rss"):
        value = getattr(mem, field, None)
        if value is not None:
            return float(value)
    raise ProviderError(f"Sin counter de memoria para pid={proc.pid}")


def _page_faults(proc: psutil.Process) -> int:
    if psutil.WINDOWS:
        return proc.memory_info().num_page_faults
    stat = Path(f"/proc/{proc.pid}/stat")
    try:
        _, faults = systemd.parse_proc_stat(stat.read_text())
    except OSError as e:
        raise ProviderError(f"No pude leer {stat}: {e}") from e
    return faults


class LocalProvider:
    def __init__(self, interval: float = SAMPLE_INTERVAL):
        self.interval = interval

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self) -> None:
        # nada que liberar: psutil / subprocess no mantienen conexiones
        pass

    # -----------------------------------------------------------------
    # Servicio
    # -----------------------------------------------------------------

    def lookup_service(self, name: str) -> ServiceInfo:
        if psutil.WINDOWS:
            return self._lookup_windows(name)
        return self._lookup_systemd(name)

    def _lookup_windows(self, name: str) -> ServiceInfo:
        # wmi solo existe en Windows (depende de pywin32)
        import wmi

        try:
            conn = wmi.WMI()
            matches = {}
            for svc in conn.Win32_Service(Name=name) + conn.Win32_Service(DisplayName=name):
                matches[svc.Name.lower()] = svc
        except wmi.x_wmi as e:
            raise ProviderError(f"Consulta WMI a Win32_Service falló: {e}") from e

        if len(matches) != 1:
            return ServiceInfo(found=bool(matches), count=len(matches))

        svc = next(iter(matches.values()))
        return ServiceInfo(
            found=True,
            count=1,
            state=svc.State or "",
            status=svc.Status or "",
            process_id=svc.ProcessId or None,
        )

    def _lookup_systemd(self, name: str) -> ServiceInfo:
        return systemd.lookup(name, _run)

    # -----------------------------------------------------------------
    # Proceso
    # -----------------------------------------------------------------

    def resolve_process_name(self, process_id: int) -> Optional[str]:
        if not process_id:
            return None
        try:
            return psutil.Process(process_id).name() or None
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None

    def _find_process(self, process_name: str, process_id: Optional[int]) -> psutil.Process:
        try:
            if process_id:
                return psutil.Process(process_id)
            for proc in psutil.process_iter(["name"]):
                if proc.info.get("name") == process_name:
                    return proc
        except psutil.Error as e:
            raise ProviderError(f"No pude abrir el proceso {process_name}: {e}") from e
        raise ProviderError(f"No hay proceso corriendo con nombre {process_name}")

    def sample_counters(self, process_name: str, process_id: Optional[int] = None) -> CounterSample:
        proc = self._find_process(process_name, process_id)
        try:
            proc.cpu_percent(None)
            faults_start = _page_faults(proc)
            start = time.monotonic()

            time.sleep(self.interval)

            cpu = proc.cpu_percent(None)
            faults_end = _page_faults(proc)
            elapsed = max(time.monotonic() - start, 1e-6)
            memory = _private_bytes(proc)
        except psutil.Error as e:
            raise ProviderError(f"Sampling de counters falló para {process_name}: {e}") from e

        sample = CounterSample(
            cpu_percent=cpu / (psutil.cpu_count() or 1),
            memory_bytes=memory,
            page_faults_per_sec=max(faults_end - faults_start, 0) / elapsed,
        )
        log.debug(f"COUNTERS | process={process_name} pid={proc.pid} sample={sample}")
        return sample

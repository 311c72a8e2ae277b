from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class Severity(IntEnum):
    # el valor es el exit code del plugin
    OK = 0
    WARNING = 1
    CRITICAL = 2
    UNKNOWN = 3


class ProviderError(Exception):
    """Falla de I/O consultando el host (SSH, systemctl, psutil...)."""


@dataclass(frozen=True)
class ServiceInfo:
    found: bool
    count: int
    state: str = ""
    status: str = ""
    process_id: Optional[int] = None


@dataclass(frozen=True)
class CounterSample:
    cpu_percent: float
    memory_bytes: float
    page_faults_per_sec: float


@dataclass(frozen=True)
class ServiceObservation:
    name: str
    exists: bool
    is_unique: bool = True
    state: str = ""
    status: str = ""
    process_id: Optional[int] = None
    process_name: Optional[str] = None
    cpu_percent: Optional[int] = None
    memory_megabytes: Optional[float] = None
    page_faults_per_sec: Optional[int] = None


@dataclass(frozen=True)
class ThresholdConfig:
    cpu_warn: Optional[float] = None
    cpu_crit: Optional[float] = None
    mem_warn: Optional[float] = None
    mem_crit: Optional[float] = None
    fault_warn: Optional[float] = None
    fault_crit: Optional[float] = None


@dataclass(frozen=True)
class CheckResult:
    severity: Severity
    message: str

    @property
    def exit_code(self) -> int:
        return int(self.severity)

    def render(self) -> str:
        # una sola línea: stderr de systemctl/SSH puede traer saltos de línea
        message = " ".join(self.message.split())
        return f"{self.severity.name} - {message}"

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from svc_monitoring.checks.base import (  # noqa: E402
    CounterSample,
    ProviderError,
    ServiceInfo,
    ServiceObservation,
    ThresholdConfig,
)


class FakeProvider:
    def __init__(
        self,
        info: ServiceInfo | None = None,
        process_name: Optional[str] = "spoolsv.exe",
        sample: CounterSample | None = None,
        lookup_error: Exception | None = None,
        sample_error: Exception | None = None,
    ) -> None:
        self.info = info or ServiceInfo(found=True, count=1, state="Running", status="OK", process_id=1234)
        self.process_name = process_name
        self.sample = sample or CounterSample(cpu_percent=12, memory_bytes=10.5 * 1024 * 1024, page_faults_per_sec=3)
        self.lookup_error = lookup_error
        self.sample_error = sample_error
        self.calls: Dict[str, int] = {"lookup": 0, "resolve": 0, "sample": 0}
        self.closed = False

    def __enter__(self) -> "FakeProvider":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.closed = True

    def lookup_service(self, name: str) -> ServiceInfo:
        self.calls["lookup"] += 1
        if self.lookup_error:
            raise self.lookup_error
        return self.info

    def resolve_process_name(self, process_id: int) -> Optional[str]:
        self.calls["resolve"] += 1
        return self.process_name

    def sample_counters(self, process_name: str, process_id: Optional[int] = None) -> CounterSample:
        self.calls["sample"] += 1
        if self.sample_error:
            raise self.sample_error
        return self.sample


@pytest.fixture()
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def provider_error() -> ProviderError:
    return ProviderError("boom")


@pytest.fixture()
def healthy_observation() -> ServiceObservation:
    return ServiceObservation(
        name="Spooler",
        exists=True,
        is_unique=True,
        state="Running",
        status="OK",
        process_id=1234,
        process_name="spoolsv.exe",
        cpu_percent=12,
        memory_megabytes=10.5,
        page_faults_per_sec=3,
    )


@pytest.fixture()
def no_thresholds() -> ThresholdConfig:
    return ThresholdConfig()

from __future__ import annotations

import dataclasses
import sys

import pytest

from svc_monitoring.checks.base import (
    CheckResult,
    CounterSample,
    ServiceInfo,
    ServiceObservation,
    Severity,
    ThresholdConfig,
)
from svc_monitoring.checks.service_check import build_summary, collect, evaluate, run

from conftest import FakeProvider


def _obs(base: ServiceObservation, **changes) -> ServiceObservation:
    return dataclasses.replace(base, **changes)


# ---------------------------------------------------------------------
# Precedencia
# ---------------------------------------------------------------------

def test_missing_service_is_critical_regardless_of_other_fields(healthy_observation) -> None:
    obs = _obs(healthy_observation, exists=False, is_unique=False, state="Stopped",
               status="Error", process_name=None, cpu_percent=sys.maxsize)

    result = evaluate(obs, ThresholdConfig(cpu_crit=1))

    assert result == CheckResult(Severity.CRITICAL, "Could not find an installed service identified by Spooler")
    assert result.render() == "CRITICAL - Could not find an installed service identified by Spooler"
    assert result.exit_code == 2


def test_ambiguous_name_is_critical_even_if_healthy(healthy_observation, no_thresholds) -> None:
    result = evaluate(_obs(healthy_observation, is_unique=False), no_thresholds)

    assert result.render() == "CRITICAL - Multiple services by the name of Spooler returned"


def test_stopped_service_is_critical(healthy_observation, no_thresholds) -> None:
    result = evaluate(_obs(healthy_observation, state="Stopped"), no_thresholds)

    assert result.render() == "CRITICAL - Spooler is not running"
    assert result.exit_code == 2


def test_state_and_status_are_case_insensitive(healthy_observation, no_thresholds) -> None:
    result = evaluate(_obs(healthy_observation, state="RUNNING", status="ok"), no_thresholds)

    assert result.severity is Severity.OK


def test_unhealthy_status_is_critical(healthy_observation, no_thresholds) -> None:
    result = evaluate(_obs(healthy_observation, status="Error"), no_thresholds)

    assert result.render() == "CRITICAL - Spooler status is Error"


def test_unresolved_process_is_unknown(healthy_observation) -> None:
    result = evaluate(_obs(healthy_observation, process_name=None), ThresholdConfig(cpu_crit=0))

    assert result.severity is Severity.UNKNOWN
    assert result.message == "Could not find the process name for Spooler"
    assert result.exit_code == 3


def test_missing_counters_are_unknown(healthy_observation) -> None:
    obs = _obs(healthy_observation, cpu_percent=None, memory_megabytes=None, page_faults_per_sec=None)

    result = evaluate(obs, ThresholdConfig(cpu_crit=0))

    assert result == CheckResult(Severity.UNKNOWN, "Could not read performance counters for Spooler")


# ---------------------------------------------------------------------
# Umbrales
# ---------------------------------------------------------------------

def test_cpu_warning_scenario(healthy_observation) -> None:
    result = evaluate(_obs(healthy_observation, cpu_percent=80), ThresholdConfig(cpu_warn=50, cpu_crit=90))

    assert result.severity is Severity.WARNING
    assert result.exit_code == 1
    assert "cpu=80%;50;90;0;100" in result.message


def test_cpu_crit_boundary_is_inclusive(healthy_observation) -> None:
    result = evaluate(_obs(healthy_observation, cpu_percent=80), ThresholdConfig(cpu_warn=50, cpu_crit=80))

    assert result.severity is Severity.CRITICAL
    assert result.exit_code == 2


def test_crit_wins_over_warn_in_same_dimension(healthy_observation) -> None:
    result = evaluate(_obs(healthy_observation, cpu_percent=99), ThresholdConfig(cpu_warn=10, cpu_crit=20))

    assert result.severity is Severity.CRITICAL


def test_cpu_warning_is_checked_before_memory_critical(healthy_observation) -> None:
    obs = _obs(healthy_observation, cpu_percent=60, memory_megabytes=4096.0)

    result = evaluate(obs, ThresholdConfig(cpu_warn=50, mem_crit=1024))

    assert result.severity is Severity.WARNING


@pytest.mark.parametrize(
    "changes, thresholds, expected",
    [
        ({"memory_megabytes": 512.0}, ThresholdConfig(mem_warn=256, mem_crit=1024), Severity.WARNING),
        ({"memory_megabytes": 1024.0}, ThresholdConfig(mem_warn=256, mem_crit=1024), Severity.CRITICAL),
        ({"page_faults_per_sec": 150}, ThresholdConfig(fault_warn=100, fault_crit=200), Severity.WARNING),
        ({"page_faults_per_sec": 200}, ThresholdConfig(fault_warn=100, fault_crit=200), Severity.CRITICAL),
        ({"page_faults_per_sec": 99}, ThresholdConfig(fault_warn=100, fault_crit=200), Severity.OK),
    ],
)
def test_memory_and_fault_thresholds(healthy_observation, changes, thresholds, expected) -> None:
    assert evaluate(_obs(healthy_observation, **changes), thresholds).severity is expected


def test_disabled_thresholds_never_fire(healthy_observation, no_thresholds) -> None:
    obs = _obs(healthy_observation, cpu_percent=sys.maxsize, memory_megabytes=1e12,
               page_faults_per_sec=sys.maxsize)

    assert evaluate(obs, no_thresholds).severity is Severity.OK


def test_zero_threshold_is_not_disabled(healthy_observation) -> None:
    result = evaluate(_obs(healthy_observation, page_faults_per_sec=0), ThresholdConfig(fault_warn=0))

    assert result.severity is Severity.WARNING


def test_ok_message_has_full_perfdata_with_empty_thresholds(healthy_observation, no_thresholds) -> None:
    result = evaluate(healthy_observation, no_thresholds)

    assert result.render() == (
        "OK - State: Running, CPU Utilization: 12%, Memory Utilization: 10.50MB, Faults: 3"
        "|cpu=12%;;;0;100 memory=10.50MB;;;; faults=3;;;;"
    )


def test_summary_is_shared_by_every_threshold_branch(healthy_observation) -> None:
    thresholds = ThresholdConfig(cpu_warn=5, cpu_crit=90, mem_warn=100, mem_crit=200, fault_warn=10, fault_crit=20)

    result = evaluate(healthy_observation, thresholds)

    assert result.severity is Severity.WARNING
    assert result.message == build_summary(healthy_observation, thresholds)
    assert result.message.endswith(
        "|cpu=12%;5;90;0;100 memory=10.50MB;100;200;; faults=3;10;20;;"
    )


# ---------------------------------------------------------------------
# Observación / run()
# ---------------------------------------------------------------------

def test_collect_builds_full_observation(fake_provider) -> None:
    obs = collect(fake_provider, "Spooler")

    assert obs.process_name == "spoolsv.exe"
    assert obs.cpu_percent == 12
    assert obs.memory_megabytes == pytest.approx(10.5)
    assert obs.page_faults_per_sec == 3


def test_collect_stops_before_sampling_a_stopped_service() -> None:
    provider = FakeProvider(info=ServiceInfo(found=True, count=1, state="Stopped", status="OK", process_id=0))

    obs = collect(provider, "Spooler")

    assert obs.state == "Stopped"
    assert provider.calls == {"lookup": 1, "resolve": 0, "sample": 0}


def test_run_maps_ambiguous_lookup() -> None:
    provider = FakeProvider(info=ServiceInfo(found=True, count=2))

    result = run(provider, "Spooler", ThresholdConfig())

    assert result.render() == "CRITICAL - Multiple services by the name of Spooler returned"


def test_run_lookup_failure_is_unknown(provider_error) -> None:
    provider = FakeProvider(lookup_error=provider_error)

    result = run(provider, "Spooler", ThresholdConfig())

    assert result.severity is Severity.UNKNOWN
    assert result.message == "Could not query service Spooler: boom"


def test_run_sampling_failure_is_unknown(provider_error) -> None:
    provider = FakeProvider(sample_error=provider_error)

    result = run(provider, "Spooler", ThresholdConfig(cpu_warn=1))

    assert result.severity is Severity.UNKNOWN
    assert "performance counters" in result.message


def test_run_unresolved_process_is_unknown() -> None:
    provider = FakeProvider(process_name=None)

    result = run(provider, "Spooler", ThresholdConfig())

    assert result.render() == "UNKNOWN - Could not find the process name for Spooler"
    assert provider.calls["sample"] == 0


def test_run_rounds_counters() -> None:
    sample = CounterSample(cpu_percent=79.6, memory_bytes=2.5 * 1024 * 1024, page_faults_per_sec=4.4)
    provider = FakeProvider(sample=sample)

    result = run(provider, "Spooler", ThresholdConfig(cpu_warn=50, cpu_crit=90))

    assert result.severity is Severity.WARNING
    assert "cpu=80%;50;90;0;100 memory=2.50MB;;;; faults=4;;;;" in result.message


def test_render_collapses_multiline_messages() -> None:
    result = CheckResult(Severity.UNKNOWN, "Could not query service ssh: first line\nsecond line\r\n")

    assert result.render() == "UNKNOWN - Could not query service ssh: first line second line"

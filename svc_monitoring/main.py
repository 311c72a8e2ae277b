"""
main.py

Entry point del chequeo svc_monitoring (plugin estilo Nagios).

- Lee argumentos (servicio + umbrales opcionales)
- Elige provider: local, o SSH si viene --host
- Ejecuta el check y imprime UNA sola línea: "{STATUS} - {mensaje}"
- Loggea diagnóstico solo si se pide (--log-file rotativo / --verbose a stderr)
- Exit code:
    0 = OK
    1 = WARNING
    2 = CRITICAL
    3 = UNKNOWN
"""

import argparse
import logging
import sys
import time
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from .checks.base import CheckResult, Severity, ThresholdConfig
from .checks.service_check import run as run_service_check
from .config import LOGGING, SAMPLE_INTERVAL, SSH_DEFAULTS
from .providers.local import LocalProvider
from .providers.ssh import SSHProvider


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

FILE_HANDLER = "svc_monitoring.file"
STDERR_HANDLER = "svc_monitoring.stderr"
NULL_HANDLER = "svc_monitoring.null"
OWN_HANDLERS = (FILE_HANDLER, STDERR_HANDLER, NULL_HANDLER)


def setup_logging(log_file: Optional[str] = None, verbose: bool = False) -> logging.Logger:
    logger = logging.getLogger(LOGGING["logger"])
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    # Evitar duplicar handlers propios si se llama main varias veces en el
    # mismo proceso; handlers agregados por terceros no cuentan
    if any(h.get_name() in OWN_HANDLERS for h in logger.handlers):
        return logger

    fmt = logging.Formatter(LOGGING["format"])

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            log_file,
            maxBytes=LOGGING["max_bytes"],
            backupCount=LOGGING["backup_count"],
            encoding="utf-8",
        )
        fh.set_name(FILE_HANDLER)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    # stdout queda reservado para la línea del plugin
    if verbose:
        sh = logging.StreamHandler(sys.stderr)
        sh.set_name(STDERR_HANDLER)
        sh.setFormatter(fmt)
        logger.addHandler(sh)

    if not (log_file or verbose):
        nh = logging.NullHandler()
        nh.set_name(NULL_HANDLER)
        logger.addHandler(nh)

    return logger


class PluginArgumentParser(argparse.ArgumentParser):
    # argumentos inválidos son UNKNOWN para el monitoreo, no exit 2
    def error(self, message):
        print(f"UNKNOWN - Invalid arguments: {message}")
        raise SystemExit(int(Severity.UNKNOWN))


def build_parser() -> argparse.ArgumentParser:
    p = PluginArgumentParser(
        prog="svc-check",
        description="Health check de un servicio del sistema operativo (formato Nagios).",
    )
    p.add_argument("--name", help="nombre del servicio")
    p.add_argument("--cpu-warn", type=int)
    p.add_argument("--cpu-crit", type=int)
    p.add_argument("--mem-warn", type=int, help="MB")
    p.add_argument("--mem-crit", type=int, help="MB")
    p.add_argument("--fault-warn", type=int, help="page faults/seg")
    p.add_argument("--fault-crit", type=int, help="page faults/seg")
    p.add_argument("--interval", type=float, default=SAMPLE_INTERVAL,
                   help="ventana de sampling de counters en segundos")

    remote = p.add_argument_group("host remoto (SSH)")
    remote.add_argument("--host")
    remote.add_argument("--port", type=int, default=SSH_DEFAULTS["port"])
    remote.add_argument("--user")
    remote.add_argument("--key-path")
    remote.add_argument("--password")

    p.add_argument("--log-file")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def thresholds_from_args(args: argparse.Namespace) -> ThresholdConfig:
    return ThresholdConfig(
        cpu_warn=args.cpu_warn,
        cpu_crit=args.cpu_crit,
        mem_warn=args.mem_warn,
        mem_crit=args.mem_crit,
        fault_warn=args.fault_warn,
        fault_crit=args.fault_crit,
    )


def make_provider(args: argparse.Namespace):
    if args.host:
        return SSHProvider(
            args.host,
            args.user,
            port=args.port,
            key_path=args.key_path,
            password=args.password,
            interval=args.interval,
        )
    return LocalProvider(interval=args.interval)


def check(args: argparse.Namespace, log: logging.Logger) -> CheckResult:
    if not args.name:
        return CheckResult(Severity.UNKNOWN, "No service name given")

    start = time.time()
    log.info(f"CHECK_START | name={args.name} host={args.host or 'localhost'}")
    try:
        with make_provider(args) as provider:
            return run_service_check(provider, args.name, thresholds_from_args(args))
    except Exception as e:
        log.error(f"CHECK_EXC | name={args.name} err={e}")
        log.debug(traceback.format_exc())
        return CheckResult(Severity.UNKNOWN, f"Check of {args.name} failed: {e}")
    finally:
        log.info(f"CHECK_END | name={args.name} dur_sec={round(time.time() - start, 2)}")


# ---------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------

def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    log = setup_logging(args.log_file, args.verbose)

    result = check(args, log)

    print(result.render())
    raise SystemExit(result.exit_code)


if __name__ == "__main__":
    main()

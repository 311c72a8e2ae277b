"""
providers/ssh.py

Provider de métricas para un host Linux remoto:
- SSH con private key o user/pass
- Ejecuta systemctl / ps / procfs con bash -lc
- Un solo bloque remoto para samplear counters (stat, sleep, stat)

Importante:
- La conexión SSH SIEMPRE se cierra (close() / context manager)
- No se cuelga: timeouts + lectura por chunks
- Sin reintentos: el poller del monitoreo ya reintenta
"""

import logging
import socket
import time
from typing import List, Optional, Tuple

import paramiko

from ..checks.base import CounterSample, ProviderError, ServiceInfo
from ..config import SAMPLE_INTERVAL, SSH_DEFAULTS
from . import systemd

log = logging.getLogger("svc_monitoring.providers.ssh")

STAT_MARK = "### STAT"
MISC_MARK = "### MISC"
SMAPS_MARK = "### SMAPS"


def quote_for_bash(cmd: str) -> str:
    return "'" + cmd.replace("'", "'\"'\"'") + "'"


def load_private_key(key_path: str) -> paramiko.PKey:
    last_err = None
    for cls in (paramiko.RSAKey, paramiko.Ed25519Key, paramiko.ECDSAKey):
        try:
            return cls.from_private_key_file(key_path)
        except Exception as e:
            last_err = e
    raise ProviderError(f"No pude cargar la private key: {last_err}")


def _read_channel(stdout, stderr, *, channel_timeout=20, read_timeout=30) -> Tuple[str, str, int]:
    ch = stdout.channel
    ch.settimeout(channel_timeout)

    out_chunks: List[bytes] = []
    err_chunks: List[bytes] = []
    start = time.time()

    while True:
        if time.time() - start > read_timeout:
            ch.close()
            raise ProviderError(f"Timeout leyendo salida SSH (>{read_timeout}s)")

        try:
            if ch.recv_ready():
                out_chunks.append(ch.recv(4096))
            if ch.recv_stderr_ready():
                err_chunks.append(ch.recv_stderr(4096))
            if ch.exit_status_ready() and not ch.recv_ready() and not ch.recv_stderr_ready():
                break
            time.sleep(0.1)
        except socket.timeout:
            pass

    exit_code = ch.recv_exit_status()
    out = b"".join(out_chunks).decode("utf-8", errors="replace")
    err = b"".join(err_chunks).decode("utf-8", errors="replace")
    return out, err, exit_code


def build_sample_block(pid: int, interval: float) -> str:
    parts = [
        f'echo "{STAT_MARK}"',
        f"cat /proc/{pid}/stat",
        f"sleep {interval}",
        f'echo "{STAT_MARK}"',
        f"cat /proc/{pid}/stat",
        f'echo "{MISC_MARK}"',
        "getconf CLK_TCK",
        "nproc",
        f'echo "{SMAPS_MARK}"',
        f"cat /proc/{pid}/smaps_rollup",
    ]
    return " && ".join(parts)


def parse_sample_output(text: str, interval: float) -> CounterSample:
    sections: List[List[str]] = []
    for line in text.splitlines():
        s = line.strip()
        if s in (STAT_MARK, MISC_MARK, SMAPS_MARK):
            sections.append([])
            continue
        if sections and s:
            sections[-1].append(s)

    if len(sections) != 4 or len(sections[2]) < 2:
        raise ProviderError("Salida de sampling incompleta")

    ticks_start, faults_start = systemd.parse_proc_stat(" ".join(sections[0]))
    ticks_end, faults_end = systemd.parse_proc_stat(" ".join(sections[1]))
    try:
        clk_tck = int(sections[2][0])
        ncpu = int(sections[2][1]) or 1
    except ValueError as e:
        raise ProviderError(f"CLK_TCK / nproc no parseables: {sections[2]}") from e

    cpu_seconds = (ticks_end - ticks_start) / clk_tck
    return CounterSample(
        cpu_percent=cpu_seconds / interval / ncpu * 100,
        memory_bytes=systemd.parse_private_kb("\n".join(sections[3])) * 1024,
        page_faults_per_sec=max(faults_end - faults_start, 0) / interval,
    )


class SSHProvider:
    def __init__(self, host: str, user: str, *, port: int = SSH_DEFAULTS["port"],
                 key_path: Optional[str] = None, password: Optional[str] = None,
                 interval: float = SAMPLE_INTERVAL):
        self.host = host
        self.port = port
        self.user = user
        self.key_path = key_path
        self.password = password
        self.interval = interval
        self._client: Optional[paramiko.SSHClient] = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _connect(self) -> paramiko.SSHClient:
        if self._client is not None:
            return self._client

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        timeout = SSH_DEFAULTS["connect_timeout"]
        try:
            pkey = load_private_key(self.key_path) if self.key_path else None
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.user,
                password=self.password,
                pkey=pkey,
                timeout=timeout,
                banner_timeout=timeout,
                auth_timeout=timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise ProviderError(f"SSH a {self.host}:{self.port} falló: {e}") from e

        log.debug(f"SSH_CONNECTED | host={self.host} port={self.port} user={self.user}")
        self._client = client
        return client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _exec(self, cmd: str, *, read_timeout: Optional[float] = None) -> Tuple[str, str, int]:
        client = self._connect()
        remote_cmd = f"bash -lc {quote_for_bash(cmd)}"
        try:
            _stdin, stdout, stderr = client.exec_command(remote_cmd, get_pty=False)
            return _read_channel(
                stdout,
                stderr,
                channel_timeout=SSH_DEFAULTS["channel_timeout"],
                read_timeout=read_timeout or SSH_DEFAULTS["read_timeout"],
            )
        except (paramiko.SSHException, OSError) as e:
            raise ProviderError(f"Comando remoto falló en {self.host}: {e}") from e

    def _exec_ok(self, cmd: str, **kwargs) -> str:
        out, err, exit_code = self._exec(cmd, **kwargs)
        if exit_code != 0:
            raise ProviderError(f"Comando remoto falló (exit_code={exit_code}): {err.strip()}")
        return out

    # -----------------------------------------------------------------
    # Interfaz del provider
    # -----------------------------------------------------------------

    def lookup_service(self, name: str) -> ServiceInfo:
        return systemd.lookup(name, lambda cmd: self._exec_ok(systemd.as_shell(cmd)))

    def resolve_process_name(self, process_id: int) -> Optional[str]:
        if not process_id:
            return None
        out, _err, exit_code = self._exec(f"ps -o comm= -p {int(process_id)}")
        name = out.strip()
        # ps sale con 1 si el pid no existe
        if exit_code != 0 or not name:
            return None
        return name

    def sample_counters(self, process_name: str, process_id: Optional[int] = None) -> CounterSample:
        if not process_id:
            out = self._exec_ok(f"pgrep -o -x {quote_for_bash(process_name)}")
            try:
                process_id = int(out.split()[0])
            except (IndexError, ValueError) as e:
                raise ProviderError(f"No hay proceso corriendo con nombre {process_name}") from e

        block = build_sample_block(int(process_id), self.interval)
        out = self._exec_ok(block, read_timeout=SSH_DEFAULTS["read_timeout"] + self.interval)
        sample = parse_sample_output(out, self.interval)
        log.debug(f"COUNTERS | host={self.host} process={process_name} pid={process_id} sample={sample}")
        return sample

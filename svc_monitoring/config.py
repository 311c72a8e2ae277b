"""
config.py

Configuración central del chequeo.

- Sin archivo de config ni variables de entorno: todo lo variable entra por CLI
- Acá quedan solo defaults (timeouts SSH, ventana de sampling, logs)
"""

# Ventana de sampling de counters (segundos)
SAMPLE_INTERVAL = 1.0

SSH_DEFAULTS = {
    "port": 22,
    "connect_timeout": 10,
    "channel_timeout": 20,
    "read_timeout": 30,
}

LOGGING = {
    "logger": "svc_monitoring",
    "format": "%(asctime)s | %(levelname)s | %(message)s",
    "max_bytes": 5 * 1024 * 1024,  # 5MB
    "backup_count": 5,
}

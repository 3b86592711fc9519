"""
Gunicorn configuration for production deployment.

Usage:
    gunicorn -c gunicorn_config.py "app:create_app()"
"""

import multiprocessing

from alphabook.config import get_env_int, get_env_str

# Server socket
bind = get_env_str('GUNICORN_BIND', '0.0.0.0:5000')
backlog = 2048

# Generation jobs run on daemon threads inside the workers when RQ is disabled
workers = get_env_int('GUNICORN_WORKERS', multiprocessing.cpu_count() * 2 + 1, min_value=1, max_value=100)
worker_class = 'gthread'
threads = get_env_int('GUNICORN_THREADS', 4, min_value=1, max_value=64)
timeout = get_env_int('GUNICORN_TIMEOUT', 120, min_value=1, max_value=3600)
keepalive = 5

# Logging
accesslog = get_env_str('GUNICORN_ACCESS_LOG', '-')  # '-' means stdout
errorlog = get_env_str('GUNICORN_ERROR_LOG', '-')  # '-' means stderr
loglevel = get_env_str('GUNICORN_LOG_LEVEL', 'info', allowed_values=['debug', 'info', 'warning', 'error', 'critical'])
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = 'alphabook'

# Server mechanics
daemon = False
graceful_timeout = 30

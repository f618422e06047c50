"""
Gunicorn configuration file for the mess billing Django application

Usage:
    gunicorn -c gunicorn_config.py messbilling.wsgi:application
"""

import multiprocessing
import os

# Server socket
bind = os.environ.get("GUNICORN_BIND", "unix:/var/run/gunicorn/messbilling.sock")

# Worker processes
workers = int(os.environ.get("GUNICORN_WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "sync"
timeout = 30
keepalive = 2

# Logging
accesslog = os.environ.get("GUNICORN_ACCESS_LOG", "/var/log/gunicorn/messbilling_access.log")
errorlog = os.environ.get("GUNICORN_ERROR_LOG", "/var/log/gunicorn/messbilling_error.log")
loglevel = "info"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "messbilling"

# Server mechanics
daemon = False
pidfile = "/var/run/gunicorn/messbilling.pid"

# Preload app for better performance
preload_app = True

# Restart workers after this many requests, to help prevent memory leaks
max_requests = 1000
max_requests_jitter = 50

# Graceful timeout for worker restart
graceful_timeout = 30

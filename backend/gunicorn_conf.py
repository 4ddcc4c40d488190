# backend/gunicorn_conf.py

# Gunicorn config file for the USSD gateway
# Run from backend/: gunicorn -c gunicorn_conf.py copay_ussd.main:app

import os

# Basic configuration
bind = os.getenv("BIND", "0.0.0.0:8000")
workers = int(os.getenv("WORKERS", "4"))
worker_class = "uvicorn.workers.UvicornWorker"

# Above the application's 30 s request timeout.
timeout = 35
graceful_timeout = 20

# Settings for running behind a reverse proxy like Nginx
forwarded_allow_ips = "*"
proxy_protocol = True
proxy_allow_ips = '*'

# --- Logging ---
# Send access and error logs to stdout and stderr
accesslog = "-"
errorlog = "-"
# Set the log level
loglevel = "info"

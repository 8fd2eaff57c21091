"""
Gunicorn configuration for the Sejenak loyalty service.

Start with: gunicorn -c gunicorn.conf.py run:app
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Workers
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = int(os.getenv('GUNICORN_TIMEOUT', '120'))
keepalive = 5

# Logging
accesslog = '-'
errorlog = '-'
loglevel = os.getenv('LOG_LEVEL', 'info').lower()
capture_output = True

proc_name = 'sejenak-loyalty'

preload_app = True
graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting Sejenak loyalty service...")


def on_exit(server):
    print("[Gunicorn] Sejenak loyalty service shutting down...")

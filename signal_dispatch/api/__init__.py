"""
REST API for the notification dispatch service.
"""

from signal_dispatch.api.server import app, init_api, run_api

__all__ = ['app', 'init_api', 'run_api']

#!/usr/bin/env python
"""
Signal Notification Service - Command Line Entry Point

Usage:
    python scripts/notification_service.py serve
    python scripts/notification_service.py sweep
    python scripts/notification_service.py usage <strategy_id>
    python scripts/notification_service.py logs <user_id>
    python scripts/notification_service.py test-channel discord --webhook-url ...

Installed as the `notification-service` console script as well.
"""

import sys

from signal_dispatch.cli import main

if __name__ == '__main__':
    sys.exit(main())

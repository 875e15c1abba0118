"""
Notification Service - Command Line Entry Point

Usage:
    # Run the HTTP API
    notification-service serve --port 8082

    # Remove expired quota records (keeps yesterday)
    notification-service sweep

    # Show today's quota usage for a strategy
    notification-service usage strat-123 --limit 5

    # Show recent delivery log entries for a user
    notification-service logs user-1 --limit 20

    # Test a channel before marking it verified
    notification-service test-channel discord --webhook-url https://discord.com/api/webhooks/...
    notification-service test-channel telegram --bot-token 123:abc --chat-id 42
    notification-service test-channel email --address me@example.com

Environment Variables:
    See NotificationConfig.from_env (NOTIFY_* and RESEND_API_KEY).
"""

import argparse
import sys
from typing import List, Optional

from signal_dispatch.audit_log import AuditLogger, setup_logging
from signal_dispatch.config import NotificationConfig, load_env_file
from signal_dispatch.coordinators import DispatchCoordinator
from signal_dispatch.errors import LedgerUnavailable
from signal_dispatch.models import DiscordChannel, EmailChannel, TelegramChannel
from signal_dispatch.scheduler import SweepScheduler


def _load_config(args: argparse.Namespace) -> NotificationConfig:
    load_env_file(args.env_file)
    return NotificationConfig.from_env()


def _build_coordinator(config: NotificationConfig, audit: bool = False) -> DispatchCoordinator:
    audit_logger = None
    if audit:
        audit_logger = AuditLogger(
            config.logging.log_file,
            level=config.logging.log_level,
            console_output=config.logging.console_output,
        )
    return DispatchCoordinator.from_config(config, audit_logger=audit_logger)


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API and the scheduled quota sweep."""
    from signal_dispatch.api.server import init_api, run_api

    config = _load_config(args)
    if args.host:
        config.api.host = args.host
    if args.port:
        config.api.port = args.port

    print("=" * 60)
    print("Signal Notification Service")
    print("=" * 60)

    issues = config.validate()
    if issues:
        print("\nConfiguration Issues:")
        for issue in issues:
            print(f"  [!] {issue}")

    print(f"\nConfiguration:")
    print(f"  Default daily limit: {config.quota.default_daily_limit}")
    print(f"  Day key timezone: {config.quota.timezone}")
    print(f"  Quota ledger: {config.quota.ledger_path}")
    print(f"  Delivery log: {config.delivery_log.log_path}")
    print(f"  Strict admission: {'Enabled' if config.dispatch.strict_admission else 'Disabled'}")
    print(f"  Scheduled sweep: {config.quota.sweep_cron if config.quota.sweep_enabled else 'Disabled'}")
    print(f"  API: {config.api.host}:{config.api.port}")
    print()

    scheduler = SweepScheduler(config.quota)
    try:
        coordinator = _build_coordinator(config, audit=True)
        init_api(coordinator)
        if scheduler.add_sweep_job(coordinator.sweep):
            scheduler.start()
        run_api(host=config.api.host, port=config.api.port)
    except KeyboardInterrupt:
        print("\nShutdown requested")
        return 0
    except LedgerUnavailable as e:
        print(f"\nError: {e}")
        return 1
    finally:
        scheduler.shutdown(wait=False)

    return 0


def cmd_sweep(args: argparse.Namespace) -> int:
    """Remove expired quota records."""
    config = _load_config(args)
    if args.retention_days:
        config.quota.retention_days = args.retention_days

    coordinator = _build_coordinator(config)
    try:
        removed = coordinator.sweep()
    except LedgerUnavailable as e:
        print(f"Sweep failed: {e}")
        return 1

    print(f"Removed {removed} expired quota record(s)")
    return 0


def cmd_usage(args: argparse.Namespace) -> int:
    """Show today's quota usage for a strategy."""
    config = _load_config(args)
    coordinator = _build_coordinator(config)
    try:
        usage = coordinator.get_usage(args.strategy_id, args.limit)
    except LedgerUnavailable as e:
        print(f"Quota ledger unavailable: {e}")
        return 1

    print(f"Quota for {args.strategy_id}")
    print("=" * 40)
    print(f"Sent today: {usage.count}/{usage.limit}")
    print(f"Remaining: {usage.remaining}")
    print(f"Limit reached: {'yes' if usage.is_limit_reached else 'no'}")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    """Show recent delivery log entries for a user."""
    config = _load_config(args)
    coordinator = _build_coordinator(config)
    entries = coordinator.list_delivery_logs(args.user_id, args.limit)

    if not entries:
        print(f"No delivery log entries for {args.user_id}")
        return 0

    print(f"{'Time (UTC)':<20} {'Channel':<9} {'Status':<7} Signal")
    print("-" * 72)
    for entry in entries:
        print(
            f"{entry.created_at.strftime('%Y-%m-%d %H:%M:%S'):<20} "
            f"{entry.channel_kind.value:<9} {entry.status.value:<7} {entry.signal_id}"
        )
        if entry.error_message:
            print(f"{'':<20} {entry.error_message}")
    return 0


def cmd_test_channel(args: argparse.Namespace) -> int:
    """Test a channel's credentials."""
    if args.kind == 'email':
        if not args.address:
            print("--address is required for email")
            return 2
        channel = EmailChannel(address=args.address)
    elif args.kind == 'discord':
        if not args.webhook_url:
            print("--webhook-url is required for discord")
            return 2
        channel = DiscordChannel(webhook_url=args.webhook_url)
    else:
        if not args.bot_token or not args.chat_id:
            print("--bot-token and --chat-id are required for telegram")
            return 2
        channel = TelegramChannel(bot_token=args.bot_token, chat_id=args.chat_id)

    config = _load_config(args)
    coordinator = _build_coordinator(config)

    print(f"Testing {channel.describe()}...")
    if coordinator.test_channel(channel):
        print("  OK")
        return 0
    print("  FAIL")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Signal Notification Service',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level'
    )
    parser.add_argument(
        '--env-file',
        help='Path to a .env file (default: ./.env if present)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command')

    serve_parser = subparsers.add_parser('serve', help='Run the HTTP API')
    serve_parser.add_argument('--host', help='Host to bind to')
    serve_parser.add_argument('--port', type=int, help='Port to bind to')

    sweep_parser = subparsers.add_parser('sweep', help='Remove expired quota records')
    sweep_parser.add_argument(
        '--retention-days',
        type=int,
        help='Days of records to keep (minimum 1)'
    )

    usage_parser = subparsers.add_parser('usage', help="Show today's quota usage")
    usage_parser.add_argument('strategy_id', help='Strategy id')
    usage_parser.add_argument('--limit', type=int, help='Daily limit to report against')

    logs_parser = subparsers.add_parser('logs', help='Show delivery log entries')
    logs_parser.add_argument('user_id', help='User id')
    logs_parser.add_argument('--limit', type=int, default=20, help='Entries to show')

    test_parser = subparsers.add_parser('test-channel', help='Test channel credentials')
    test_parser.add_argument('kind', choices=['email', 'discord', 'telegram'])
    test_parser.add_argument('--address', help='Email address')
    test_parser.add_argument('--webhook-url', help='Discord webhook URL')
    test_parser.add_argument('--bot-token', help='Telegram bot token')
    test_parser.add_argument('--chat-id', help='Telegram chat id')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    if args.command == 'serve':
        return cmd_serve(args)
    elif args.command == 'sweep':
        return cmd_sweep(args)
    elif args.command == 'usage':
        return cmd_usage(args)
    elif args.command == 'logs':
        return cmd_logs(args)
    elif args.command == 'test-channel':
        return cmd_test_channel(args)
    else:
        parser.print_help()
        return 0


if __name__ == '__main__':
    sys.exit(main())

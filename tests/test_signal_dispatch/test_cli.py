"""
Tests for signal_dispatch/cli.py
"""

import os
from datetime import date
from unittest.mock import patch

import pytest

from signal_dispatch import config as config_module
from signal_dispatch.cli import build_parser, main
from signal_dispatch.quota_ledger import QuotaLedger
from signal_dispatch.utils.trading_day import SignalDayClock


@pytest.fixture
def env(tmp_path):
    """Isolated environment pointing both stores at tmp_path."""
    values = {
        'NOTIFY_LEDGER_PATH': str(tmp_path / 'quota.db'),
        'NOTIFY_DELIVERY_LOG_PATH': str(tmp_path / 'delivery_log.db'),
        'NOTIFY_LOG_FILE': str(tmp_path / 'notifications.log'),
    }
    config_module._env_loaded = True
    with patch.dict(os.environ, values, clear=True):
        yield values
    config_module._env_loaded = False


class TestParser:

    def test_commands(self):
        parser = build_parser()
        args = parser.parse_args(['usage', 'strat-1', '--limit', '3'])
        assert args.command == 'usage'
        assert args.strategy_id == 'strat-1'
        assert args.limit == 3

    def test_logs_default_limit(self):
        assert build_parser().parse_args(['logs', 'user-1']).limit == 20

    def test_bad_channel_kind(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['test-channel', 'sms'])


class TestCommands:

    def test_no_command_prints_help(self, env, capsys):
        assert main([]) == 0
        assert 'usage' in capsys.readouterr().out

    def test_usage(self, env, capsys):
        QuotaLedger(env['NOTIFY_LEDGER_PATH']).increment('strat-1', SignalDayClock().today(), 5)

        assert main(['usage', 'strat-1']) == 0

        out = capsys.readouterr().out
        assert 'Sent today: 1/5' in out
        assert 'Remaining: 4' in out

    def test_sweep(self, env, capsys):
        QuotaLedger(env['NOTIFY_LEDGER_PATH']).increment('strat-1', date(2020, 1, 1), 5)

        assert main(['sweep']) == 0
        assert 'Removed 1 expired quota record(s)' in capsys.readouterr().out

    def test_logs_empty(self, env, capsys):
        assert main(['logs', 'user-1']) == 0
        assert 'No delivery log entries for user-1' in capsys.readouterr().out

    def test_test_channel_missing_args(self, env, capsys):
        assert main(['test-channel', 'telegram', '--bot-token', 'x']) == 2

    def test_test_channel_routes_to_coordinator(self, env, capsys):
        with patch('signal_dispatch.cli.DispatchCoordinator.test_channel', return_value=True) as mock_test:
            code = main(['test-channel', 'email', '--address', 'me@example.com'])

        assert code == 0
        assert mock_test.call_args.args[0].address == 'me@example.com'
        assert 'OK' in capsys.readouterr().out

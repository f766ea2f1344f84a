"""
Tests for the command line entry point of call_success_report.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
from cassandra.cluster import NoHostAvailable

from call_success_processor import DEFAULT_CHUNK_SIZE
from call_success_report import main, parse_arguments
from tests.helpers import make_record


@pytest.fixture
def mock_source():
    """Patch CassandraCallSource and logging setup, return the entered source."""
    with patch('call_success_report.setup_logging'), \
            patch('call_success_report.CassandraCallSource') as source_class:
        source = MagicMock()
        source_class.return_value.__enter__.return_value = source
        source.source_class = source_class
        yield source


def test_parse_arguments_defaults():
    args = parse_arguments(['-c', '127.0.0.1'])

    assert args.contact_points == '127.0.0.1'
    assert args.ssl_cert_path is None
    assert args.filter_user_phone_number is None
    assert args.duration_min is None
    assert args.duration_max is None
    assert args.fetch_size == DEFAULT_CHUNK_SIZE
    assert args.verbose is False


def test_parse_arguments_requires_contact_points():
    with pytest.raises(SystemExit):
        parse_arguments([])


def test_parse_arguments_rejects_bad_fetch_size():
    with pytest.raises(SystemExit):
        parse_arguments(['-c', 'host', '--fetch-size', '0'])


def test_main_prints_summary(mock_source, two_records, capsys):
    mock_source.fetch_call_records.return_value = iter(two_records)

    exit_code = main(['-c', '127.0.0.1,127.0.0.2', '-s', '/certs/node.pem'])

    assert exit_code == 0
    assert capsys.readouterr().out == "1 / 2 (0.50) calls were successful\n"
    mock_source.source_class.assert_called_once_with(
        '127.0.0.1,127.0.0.2', '/certs/node.pem', fetch_size=DEFAULT_CHUNK_SIZE)


def test_main_applies_filters(mock_source, two_records, capsys):
    mock_source.fetch_call_records.return_value = iter(two_records)

    exit_code = main(['-c', 'host', '--filter-user-phone-number', '555',
                      '--duration-min', '0:0:0', '--duration-max', '0:0:30'])

    assert exit_code == 0
    assert capsys.readouterr().out == "1 / 1 (1.00) calls were successful\n"


def test_main_no_matches_prints_nan(mock_source, capsys):
    mock_source.fetch_call_records.return_value = iter([])

    assert main(['-c', 'host']) == 0
    assert capsys.readouterr().out == "0 / 0 (NaN) calls were successful\n"


def test_main_bad_duration_argument(mock_source, capsys):
    exit_code = main(['-c', 'host', '--duration-min', 'ten minutes'])

    assert exit_code == 1
    assert capsys.readouterr().out == ""
    mock_source.source_class.assert_not_called()


def test_main_malformed_row(mock_source, capsys):
    mock_source.fetch_call_records.return_value = iter([make_record("abc:0:0")])

    assert main(['-c', 'host']) == 1
    assert capsys.readouterr().out == ""


def test_main_connection_failure(mock_source, capsys):
    mock_source.source_class.return_value.__enter__.side_effect = NoHostAvailable(
        "Unable to connect to any servers", {})

    assert main(['-c', 'host']) == 1
    assert capsys.readouterr().out == ""


# =============================================================================
# Logging output, with setup_logging left in place
# =============================================================================

@pytest.fixture
def logged_source():
    """Patch only CassandraCallSource and undo the root handlers main installs."""
    root = logging.getLogger()
    level = root.level
    with patch('call_success_report.CassandraCallSource') as source_class:
        source = MagicMock()
        source_class.return_value.__enter__.return_value = source
        source.source_class = source_class
        yield source

    for handler in list(root.handlers):
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_stdout_carries_only_the_report(logged_source, two_records, capsys):
    logged_source.fetch_call_records.return_value = iter(two_records)

    assert main(['-c', 'host']) == 0

    captured = capsys.readouterr()
    assert captured.out == "1 / 2 (0.50) calls were successful\n"
    assert "INFO - Matched 2 calls, 1 successful" in captured.err
    assert "DEBUG" not in captured.err


def test_verbose_logs_debug_to_stderr(logged_source, two_records, capsys):
    logged_source.fetch_call_records.return_value = iter(two_records)

    assert main(['-c', 'host', '-v']) == 0

    captured = capsys.readouterr()
    assert captured.out == "1 / 2 (0.50) calls were successful\n"
    assert "DEBUG - Loaded 2 records" in captured.err
    assert "INFO - Matched 2 calls, 1 successful" in captured.err


def test_log_file_receives_records(logged_source, two_records, tmp_path, capsys):
    logged_source.fetch_call_records.return_value = iter(two_records)
    log_path = tmp_path / "r.log"

    assert main(['-c', 'host', '--log-file', str(log_path)]) == 0

    assert capsys.readouterr().out == "1 / 2 (0.50) calls were successful\n"
    assert "CallSuccessReport - INFO - Matched 2 calls, 1 successful" in log_path.read_text()


def test_errors_are_logged_to_stderr(logged_source, capsys):
    logged_source.fetch_call_records.return_value = iter([make_record("abc:0:0")])

    assert main(['-c', 'host']) == 1

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "ERROR - Failed to parse duration from table at record 0" in captured.err


def test_unwritable_log_file(logged_source, tmp_path, capsys):
    log_path = tmp_path / "nodir" / "x.log"

    assert main(['-c', 'host', '--log-file', str(log_path)]) == 1

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Cannot open log file" in captured.err
    logged_source.source_class.assert_not_called()

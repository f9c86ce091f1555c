import json

from storyrelay.config import load_config
from storyrelay.logging import StructuredLogger, configure_logging, get_logger


def _json_lines(text):
    return [json.loads(line) for line in text.strip().split('\n') if line]


def test_structured_logger_json_format(capsys):
    """Structured logger produces one JSON object per line on stderr."""
    logger = StructuredLogger(name='test', json_logging=True, level='INFO')
    logger.log_operation('test_operation', param1='value1', param2=42)

    captured = capsys.readouterr()
    assert captured.out == ''
    (entry,) = _json_lines(captured.err)
    assert entry['level'] == 'INFO'
    assert entry['logger'] == 'test'
    assert entry['message'] == 'Operation: test_operation'
    assert entry['operation'] == 'test_operation'
    assert entry['param1'] == 'value1'
    assert entry['param2'] == 42
    assert 'timestamp' in entry
    # standard LogRecord attributes stay out of the payload
    assert 'lineno' not in entry
    assert 'args' not in entry


def test_issue_action_logging(capsys):
    logger = StructuredLogger(name='test', json_logging=True)
    logger.log_issue_action('updated', 176650922, issue_number=42, dry_run=True)

    (entry,) = _json_lines(capsys.readouterr().err)
    assert entry['message'] == 'issue updated story 176650922 #42 [DRY]'
    assert entry['operation'] == 'issue_updated'
    assert entry['story_id'] == 176650922
    assert entry['issue_number'] == 42


def test_performance_and_error_logging(capsys):
    logger = StructuredLogger(name='test', json_logging=True)
    logger.log_performance('relay_event', 12.3456)
    logger.log_error('failed', error='boom', story_id=1)

    perf, err = _json_lines(capsys.readouterr().err)
    assert perf['duration_ms'] == 12.35
    assert err['level'] == 'ERROR'
    assert err['error'] == 'boom'


def test_timed_operation_logs_failure(capsys):
    logger = StructuredLogger(name='test', json_logging=True)
    try:
        with logger.timed_operation('feed'):
            raise RuntimeError('github down')
    except RuntimeError:
        pass

    start, failure = _json_lines(capsys.readouterr().err)
    assert start['operation'] == 'feed_start'
    assert failure['message'] == 'operation feed failed'
    assert failure['error'] == 'github down'


def test_level_filters_debug(capsys):
    logger = StructuredLogger(name='test', json_logging=True, level='INFO')
    logger.debug('hidden')
    logger.info('shown')

    entries = _json_lines(capsys.readouterr().err)
    assert [e['message'] for e in entries] == ['shown']


def test_plain_text_format(capsys):
    logger = StructuredLogger(name='test', json_logging=False)
    logger.info('hello')

    err = capsys.readouterr().err
    assert 'INFO test hello' in err
    assert not err.lstrip().startswith('{')


def test_configure_logging_replaces_global():
    configured = configure_logging(json_logging=True, level='DEBUG')
    assert get_logger() is configured


def test_logging_settings_from_config(tmp_path):
    cfg_path = tmp_path / 'storyrelay.config.yaml'
    cfg_path.write_text('logging:\n  json_enabled: true\n  level: DEBUG\n')

    cfg = load_config(cfg_path)

    assert cfg.logging_json_enabled is True
    assert cfg.logging_level == 'DEBUG'

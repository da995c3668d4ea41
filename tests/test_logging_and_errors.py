"""
Tests for structured logging and the error handling middleware.
"""
import json
import logging
import sys

import pytest

from frontierlab.infrastructure.logging.logger import (
    FrontierLogger, LoggerFactory, StructuredFormatter, _safe_extra, get_logger, log_performance
)
from frontierlab.infrastructure.middleware import error_handler as error_module
from frontierlab.infrastructure.middleware.error_handler import (
    EXIT_CONFIGURATION, EXIT_INFEASIBLE, EXIT_OPTIMIZATION, EXIT_UNEXPECTED, EXIT_VALIDATION,
    ErrorContext, ErrorHandler, get_error_handler, handle_errors
)
from frontierlab.domain.exceptions import (
    AssetMismatch, ConfigurationError, ConstraintInfeasible, EmptyFrontier, FrontierError,
    InvalidConfigurationError, SolverError, UnboundedProblem, ValidationError, wrap_exception
)


@pytest.fixture
def quiet_logger():
    logger = FrontierLogger('frontierlab.tests.quiet', {'console_output': False})
    yield logger
    close_handlers(logger)


def close_handlers(logger):
    for handler in logger._logger.handlers:
        handler.close()
    logger._logger.handlers.clear()


def read_records(path):
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def test_safe_extra_prefixes_reserved_keys():
    fields = _safe_extra({'name': 'x', 'message': 'y', 'n_points': 25})
    assert fields == {'ctx_name': 'x', 'ctx_message': 'y', 'n_points': 25}


def test_structured_log_file(tmp_path):
    path = tmp_path / 'logs' / 'frontier.jsonl'
    logger = FrontierLogger('frontierlab.tests.structured', {
        'console_output': False,
        'structured_file_path': str(path),
        'level': 'DEBUG',
    })
    with logger.context(method='mean-var'):
        logger.info('Computed frontier', n_points=25, name='reserved')
    logger.debug('outside context')
    close_handlers(logger)

    first, second = read_records(path)
    assert first['message'] == 'Computed frontier'
    assert first['extra'] == {'method': 'mean-var', 'n_points': 25, 'ctx_name': 'reserved'}
    assert second['level'] == 'DEBUG'
    assert 'extra' not in second


def test_structured_formatter_includes_exception():
    try:
        raise ValueError('bad target')
    except ValueError:
        record = logging.LogRecord('x', logging.ERROR, __file__, 1, 'failed', (), sys.exc_info())
    entry = json.loads(StructuredFormatter().format(record))

    assert entry['exception']['type'] == 'ValueError'
    assert entry['exception']['message'] == 'bad target'


def test_unknown_log_level():
    with pytest.raises(ConfigurationError):
        FrontierLogger('frontierlab.tests.level', {'level': 'LOUD', 'console_output': False})


def test_bound_logger_merges_context(tmp_path):
    path = tmp_path / 'bound.jsonl'
    logger = FrontierLogger('frontierlab.tests.bound', {'console_output': False, 'structured_file_path': str(path)})
    logger.bind(portfolio='long_only').warning('Skipped targets', skipped=2)
    close_handlers(logger)

    (record,) = read_records(path)
    assert record['extra'] == {'portfolio': 'long_only', 'skipped': 2}


def test_get_logger_is_cached():
    assert get_logger('frontierlab.tests.cached') is get_logger('frontierlab.tests.cached')
    LoggerFactory.shutdown()


def test_log_performance_reraises(quiet_logger):
    @log_performance(quiet_logger)
    def failing():
        raise SolverError('solver stalled')

    with pytest.raises(SolverError):
        failing()
    assert failing.__name__ == 'failing'


class TestErrorHandler:
    """Test mapping of exceptions to responses and exit codes."""

    @pytest.fixture
    def handler(self, quiet_logger):
        return ErrorHandler(quiet_logger)

    @pytest.mark.parametrize('error,exit_code,category', [
        (AssetMismatch('columns differ'), EXIT_VALIDATION, 'validation'),
        (ValidationError('bad input'), EXIT_VALIDATION, 'validation'),
        (ConstraintInfeasible('empty set'), EXIT_INFEASIBLE, 'optimization'),
        (UnboundedProblem('no bounds'), EXIT_INFEASIBLE, 'optimization'),
        (EmptyFrontier('nothing solved'), EXIT_OPTIMIZATION, 'optimization'),
        (SolverError('stalled'), EXIT_OPTIMIZATION, 'optimization'),
        (InvalidConfigurationError('bad config'), EXIT_CONFIGURATION, 'configuration'),
        (FrontierError('generic'), EXIT_UNEXPECTED, 'framework'),
        (FileNotFoundError('returns.csv'), EXIT_VALIDATION, 'input'),
        (ValueError('bad value'), EXIT_VALIDATION, 'validation'),
        (RuntimeError('boom'), EXIT_UNEXPECTED, 'unknown'),
    ])
    def test_exit_codes(self, handler, error, exit_code, category):
        response = handler.handle_error(error, ErrorContext('frontier'))

        assert response['exit_code'] == exit_code
        assert response['category'] == category
        assert response['error_type'] == type(error).__name__

    def test_error_code_and_context_are_reported(self, handler):
        error = ConstraintInfeasible('empty set', error_code='UNREACHABLE_SUM', context={'lower_total': 1.5})
        response = handler.handle_error(error)

        assert response['error_code'] == 'UNREACHABLE_SUM'
        assert response['context'] == {'lower_total': 1.5}
        assert response['message'] == 'empty set'
        assert 'suggested_action' in response

    def test_default_error_code(self, handler):
        assert handler.handle_error(EmptyFrontier('nothing'))['error_code'] == 'EMPTY_FRONTIER'

    def test_reraise(self, handler):
        with pytest.raises(ValidationError):
            handler.handle_error(ValidationError('bad'), reraise=True)

    def test_custom_handler(self, handler):
        handler.register_handler(SolverError, lambda e, ctx: {'exit_code': 9, 'severity': 'warning'})
        assert handler.handle_error(SolverError('stalled'))['exit_code'] == 9

    def test_wrapped_exception_keeps_origin(self, handler):
        wrapped = wrap_exception(KeyError('assets'), ValidationError, 'Spec file is invalid', 'INVALID_SPEC')
        response = handler.handle_error(wrapped)

        assert response['context']['original_type'] == 'KeyError'
        assert response['error_code'] == 'INVALID_SPEC'

    def test_decorator_returns_response(self, handler, monkeypatch):
        monkeypatch.setattr(error_module, '_global_error_handler', handler)
        assert get_error_handler() is handler

        @handle_errors('compute')
        def compute():
            raise UnboundedProblem('no bounds')

        assert compute()['exit_code'] == EXIT_INFEASIBLE

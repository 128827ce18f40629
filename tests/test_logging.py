import logging

from common.logging import ContextAdapter, LoggingManager


def test_context_logger_prefixes_messages():
    log = LoggingManager.context_logger('app.test_logging', user=3)
    msg, _ = log.process("Report failed", {})
    assert msg == "[user=3] Report failed"


def test_bind_merges_context_and_skips_missing_values():
    log = LoggingManager.context_logger('app.test_logging', user=3)
    bound = log.bind(repository="octo/widgets", step=None)
    assert isinstance(bound, ContextAdapter)
    msg, _ = bound.process("boom", {})
    assert msg == "[user=3 repository=octo/widgets] boom"
    # The parent adapter keeps its own context.
    assert log.process("x", {})[0] == "[user=3] x"


def test_logging_manager_configures_file_handler(tmp_path):
    manager = LoggingManager.for_cli(logs_dir=str(tmp_path), log_level="debug")
    logger = manager.get_configured_logger()
    try:
        assert logger.name == "app"
        assert logger.level == logging.DEBUG
        assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)
        assert list(tmp_path.glob("devinsight_*.log"))
    finally:
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.propagate = True


def test_reconfiguring_does_not_stack_handlers():
    LoggingManager('app.test_stack', console_output=True)
    logger = LoggingManager('app.test_stack', console_output=True).get_configured_logger()
    assert len(logger.handlers) == 1

import logging
import time

from voice_chorus.timing import log_elapsed


def test_log_elapsed_logs_and_returns_new_mark(caplog):
    log = logging.getLogger("voice_chorus.test")
    start = time.perf_counter() - 1.5

    with caplog.at_level(logging.INFO, logger="voice_chorus.test"):
        mark = log_elapsed("Llama query complete", start, log)

    assert mark > start
    assert caplog.records[-1].getMessage().startswith("Llama query complete (1.5")
    assert caplog.records[-1].getMessage().endswith("s)")

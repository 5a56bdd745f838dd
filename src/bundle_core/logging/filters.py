"""Log filters."""

import logging

from bundle_core.logging.context import get_log_context


class StageContextFilter(logging.Filter):
    """Pass only records logged while the given stage is the active context."""

    def __init__(self, stage: str):
        super().__init__()
        self.stage = stage

    def filter(self, record: logging.LogRecord) -> bool:
        return get_log_context()["stage"] == self.stage

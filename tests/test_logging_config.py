import logging
import unittest

from lineclaim.logging_config import CycleIdFilter, configure_logging, get_cycle_id, set_cycle_id


class LoggingConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        root = logging.getLogger()
        saved_handlers = root.handlers[:]
        saved_level = root.level

        def restore() -> None:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

        self.addCleanup(restore)

    def test_filter_stamps_current_cycle_id(self) -> None:
        set_cycle_id("claim-42")
        record = logging.LogRecord("lineclaim", logging.INFO, __file__, 1, "msg", None, None)

        self.assertTrue(CycleIdFilter().filter(record))
        self.assertEqual(record.cycle_id, "claim-42")
        self.assertEqual(get_cycle_id(), "claim-42")

    def test_configure_logging_installs_single_handler(self) -> None:
        configure_logging("debug")
        configure_logging("warning")

        root = logging.getLogger()
        self.assertEqual(len(root.handlers), 1)
        self.assertEqual(root.level, logging.WARNING)
        self.assertTrue(any(isinstance(f, CycleIdFilter) for f in root.handlers[0].filters))

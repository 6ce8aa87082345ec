"""
Logging utilities for pileup-consensus.
Sets up logging to stderr and an optional log file.
"""

import logging
import multiprocessing
import sys
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from typing import Optional


def setup_logging(log_file: Optional[Path] = None, verbose: int = 0):
    """
    Setup logging to stderr (INFO, or DEBUG when verbose) and optionally to a log file (DEBUG).
    Standard output is left free for the pileup and diagnostic streams.
    Supports multiprocessing via a QueueListener.

    :param log_file: Optional path of a log file.
    :param verbose: Verbosity level from the command line.
    :return: Tuple (queue, listener); pass the queue to pool workers.
    """
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose > 2 else logging.INFO)
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Queue for multiprocessing
    queue = multiprocessing.Manager().Queue(-1)

    listener = QueueListener(queue, *handlers, respect_handler_level=True)
    listener.start()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in root.handlers[:]:
        root.removeHandler(h)
    root.addHandler(QueueHandler(queue))

    if log_file is not None:
        root.info(f"Logging initialized. Log file: {log_file}")

    return queue, listener


def worker_configurer(queue):
    """
    Configure a worker process to log to the central queue.
    """
    root = logging.getLogger()
    for h in root.handlers[:]:
        root.removeHandler(h)
    root.addHandler(QueueHandler(queue))
    root.setLevel(logging.DEBUG)

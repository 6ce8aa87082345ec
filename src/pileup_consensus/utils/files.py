"""
File helpers for pileup-consensus.
Opens inputs transparently whether plain or gzip-compressed, with '-' for the standard streams.
"""

import contextlib
import gzip
import sys
from pathlib import Path
from typing import IO, Iterator, Union


@contextlib.contextmanager
def open_input(path: Union[str, Path]) -> Iterator[IO[str]]:
    """
    Open a text input for reading; '-' reads standard input.
    """
    if str(path) == "-":
        yield sys.stdin
        return
    opener = gzip.open if str(path).endswith(".gz") else open
    with opener(path, "rt", encoding="utf-8") as handle:
        yield handle


@contextlib.contextmanager
def open_output(path: Union[str, Path]) -> Iterator[IO[str]]:
    """
    Open a text output for writing; '-' writes to standard output.
    """
    if str(path) == "-":
        yield sys.stdout
        sys.stdout.flush()
        return
    with open(path, "w", encoding="utf-8") as handle:
        yield handle

"""
Alignment stream parser for pileup-consensus.
Each line holds one read followed by all of its placements:

    read_id [anchor] sequence (contig contig_start read_start align_length read_length is_rc)*

The anchor base is present only for colour-space reads.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, Union

from pileup_consensus.core.models import Alignment, ReadAlignments
from pileup_consensus.utils.files import open_input

logger = logging.getLogger(__name__)

FIELDS_PER_ALIGNMENT = 6


def parse_alignment_line(line: str, colour_space: bool = False) -> ReadAlignments:
    """
    Parse a single alignment line.

    :param line: Whitespace-separated alignment record.
    :param colour_space: Whether the read carries an anchor base before its sequence.
    :return: ReadAlignments for the line.
    """
    tokens = line.split()
    header_size = 3 if colour_space else 2
    if len(tokens) < header_size:
        raise ValueError(f"Expected at least {header_size} fields, found {len(tokens)}")

    if colour_space:
        read_id, anchor, sequence = tokens[:3]
    else:
        (read_id, sequence), anchor = tokens[:2], None

    placements = tokens[header_size:]
    if len(placements) % FIELDS_PER_ALIGNMENT:
        raise ValueError(f"Truncated alignment for read {read_id}")

    alignments = []
    for i in range(0, len(placements), FIELDS_PER_ALIGNMENT):
        contig, contig_start, read_start, align_length, read_length, is_rc = placements[i:i + FIELDS_PER_ALIGNMENT]
        if is_rc not in ("0", "1"):
            raise ValueError(f"Invalid orientation flag {is_rc!r} for read {read_id}")
        alignments.append(Alignment(
            contig=contig,
            contig_start=int(contig_start),
            read_start=int(read_start),
            align_length=int(align_length),
            read_length=int(read_length),
            is_rc=is_rc == "1",
        ))

    return ReadAlignments(read_id=read_id, sequence=sequence, alignments=alignments, anchor=anchor)


def iter_alignments(lines: Iterable[str], colour_space: bool = False) -> Iterator[ReadAlignments]:
    """
    Parse an iterable of alignment lines, skipping blank ones.
    """
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            yield parse_alignment_line(line, colour_space)
        except ValueError as e:
            raise ValueError(f"Malformed alignment at line {line_number}: {e}") from e


def parse_alignments(alignments_path: Union[str, Path], colour_space: bool = False) -> Iterator[ReadAlignments]:
    """
    Stream alignment records from a file, a gzipped file, or standard input ('-').

    :param alignments_path: Path to the alignment stream.
    :param colour_space: Whether reads are colour-space reads with an anchor base.
    :return: Iterator of ReadAlignments.
    """
    logger.debug(f"Reading alignments from {'standard input' if str(alignments_path) == '-' else alignments_path}")
    with open_input(alignments_path) as handle:
        yield from iter_alignments(handle, colour_space)

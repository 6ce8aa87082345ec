"""
FASTA contig parser for pileup-consensus.
Reads draft contigs with their header metadata, detects colour-space input,
and registers every contig with the pileup accumulator.
"""

import logging
from pathlib import Path
from typing import Iterator, Tuple, Union

from Bio import SeqIO

from pileup_consensus.core.models import RunMode
from pileup_consensus.core.pileup import PileupAccumulator
from pileup_consensus.utils.files import open_input

logger = logging.getLogger(__name__)


def parse_header_comment(comment: str) -> Tuple[int, str]:
    """
    Split a contig header comment of the form '<length> <coverage> <free text>'.

    :param comment: Header text following the contig identifier.
    :return: Tuple (coverage, free text). Coverage is 0 when absent or unparseable.
    """
    fields = comment.split(maxsplit=2)
    if len(fields) < 2:
        return 0, ""
    try:
        coverage = int(fields[1])
    except ValueError:
        return 0, ""
    return coverage, fields[2] if len(fields) > 2 else ""


def iter_contigs(contigs_path: Union[str, Path]) -> Iterator[Tuple[str, str, int, str]]:
    """
    Yield (contig_id, sequence, coverage, comment) for every FASTA record.
    Letter case and N bases are kept as they are in the file.
    """
    with open_input(contigs_path) as handle:
        for record in SeqIO.parse(handle, "fasta"):
            contig_id = str(record.id)
            comment = record.description[len(contig_id):].strip() if record.description.startswith(contig_id) else ""
            coverage, free_text = parse_header_comment(comment)
            yield contig_id, str(record.seq), coverage, free_text


def resolve_mode(first_sequence: str, output_colour_space: bool) -> RunMode:
    """
    Decide the run mode from the first contig: colour-space contigs start with a digit.

    :param first_sequence: Sequence of the first contig in the file.
    :param output_colour_space: Whether colour-space output was requested.
    :return: The RunMode for the whole run.
    """
    colour_input = bool(first_sequence) and first_sequence[0].isdigit()
    if output_colour_space:
        if not colour_input:
            raise ValueError("Cannot convert nucleotide data to colour space.")
        return RunMode.COLOUR_SPACE
    return RunMode.COLOUR_TO_NUCLEOTIDE if colour_input else RunMode.NUCLEOTIDE


def read_contigs(contigs_path: Union[str, Path], output_colour_space: bool = False) -> PileupAccumulator:
    """
    Read all contigs and build an accumulator with an empty pileup table for each.

    :param contigs_path: Path to the contig FASTA (optionally gzipped).
    :param output_colour_space: Keep colour-space contigs in colour space.
    :return: A PileupAccumulator holding every contig.
    """
    accumulator = None
    for contig_id, sequence, coverage, comment in iter_contigs(contigs_path):
        if accumulator is None:
            accumulator = PileupAccumulator(resolve_mode(sequence, output_colour_space))
        elif sequence:
            if sequence[0].isdigit() != accumulator.mode.colour_input:
                raise ValueError(f"Contig {contig_id} is not in the same sequence space as the first contig")
        accumulator.register_contig(contig_id, sequence, coverage, comment)

    if accumulator is None:
        raise ValueError(f"No contigs found in {contigs_path}")

    logger.info(f"Read {len(accumulator)} contigs")
    logger.info(f"Run mode: {accumulator.mode.value}")
    return accumulator

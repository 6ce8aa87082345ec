"""
Pileup accumulation for pileup-consensus.
Folds read alignments into per-position base-count tables, one table per contig.
"""

import logging
from typing import Dict, Iterable, Iterator, List, Tuple

import numpy as np

from pileup_consensus.core.encoding import (
    decode_colour_read,
    encode_sequence,
    is_colour_sequence,
    reverse_complement,
)
from pileup_consensus.core.models import (
    Alignment,
    ContigPileup,
    PileupBoundsError,
    ReadAlignments,
    RunMode,
)

logger = logging.getLogger(__name__)


class PileupAccumulator:
    """
    Owns the contig table for one run and accumulates read votes into it.
    """

    def __init__(self, mode: RunMode = RunMode.NUCLEOTIDE):
        self.mode = mode
        self.contigs: Dict[str, ContigPileup] = {}
        self.reads_used = 0
        self.reads_skipped = 0
        self.unknown_contig_hits = 0

    def __contains__(self, contig_id: str) -> bool:
        return contig_id in self.contigs

    def __iter__(self) -> Iterator[ContigPileup]:
        return iter(self.contigs.values())

    def __len__(self) -> int:
        return len(self.contigs)

    def register_contig(self, contig_id: str, sequence: str, coverage: int = 0, comment: str = "") -> ContigPileup:
        """
        Create the pileup table for a contig.
        Colour-space contigs converted to nucleotide space decode to one more base than they have colours.

        :param contig_id: Contig identifier.
        :param sequence: Draft sequence.
        :param coverage: Coverage declared upstream.
        :param comment: Free-text comment carried to the output.
        :return: The registered ContigPileup.
        """
        if contig_id in self.contigs:
            raise ValueError(f"Contig {contig_id} registered twice")

        num_positions = len(sequence) + 1 if self.mode is RunMode.COLOUR_TO_NUCLEOTIDE else len(sequence)
        contig = ContigPileup(
            contig_id=contig_id,
            sequence=sequence,
            coverage=coverage,
            comment=comment,
            counts=np.zeros((num_positions, 4), dtype=np.uint32),
        )
        self.contigs[contig_id] = contig
        return contig

    def read_window(self, alignment: Alignment, table_length: int) -> Tuple[int, int]:
        """
        Return the half-open range of read offsets that pile onto the contig.
        """
        if self.mode is RunMode.COLOUR_TO_NUCLEOTIDE:
            # The decoded read carries its anchor, one base more than the aligned colours
            read_min = alignment.read_start
            read_max = read_min + alignment.align_length + 1
        else:
            read_min = max(0, alignment.read_start - alignment.contig_start)
            read_max = min(alignment.read_length,
                           alignment.read_start + table_length - alignment.contig_start)
        return read_min, read_max

    def accumulate(self, read_id: str, sequence: str, alignments: List[Alignment]) -> bool:
        """
        Add the votes of one read to every contig it aligns to.
        In colour-to-nucleotide mode `sequence` is the decoded nucleotide read and only
        placements anchored at the start of the read are used.

        :param read_id: Read identifier, used in error messages.
        :param sequence: Read sequence in the space of the pileup tables.
        :param alignments: Placements of the read.
        :return: True if at least one placement landed on a registered contig.
        """
        if self.mode is RunMode.COLOUR_TO_NUCLEOTIDE:
            alignments = [a for a in alignments if a.read_start == 0]
            if not alignments:
                return False

        forward_codes = None
        reverse_codes = None
        piled = False
        for alignment in alignments:
            contig = self.contigs.get(alignment.contig)
            if contig is None:
                self.unknown_contig_hits += 1
                continue
            piled = True

            if alignment.is_rc:
                if reverse_codes is None:
                    reverse_codes = encode_sequence(reverse_complement(sequence))
                codes = reverse_codes
                placement = alignment.flip_query()
            else:
                if forward_codes is None:
                    forward_codes = encode_sequence(sequence)
                codes = forward_codes
                placement = alignment

            self._pile(read_id, contig, placement, codes)
        return piled

    def _pile(self, read_id: str, contig: ContigPileup, alignment: Alignment, codes: np.ndarray):
        table_length = contig.table_length
        read_min, read_max = self.read_window(alignment, table_length)
        if read_max <= read_min:
            return

        offset = alignment.contig_start - alignment.read_start
        first, last = offset + read_min, offset + read_max - 1
        if read_min < 0 or read_max > len(codes) or first < 0 or last >= table_length:
            logger.error(
                f"Read {read_id} maps read[{read_min}:{read_max}] (length {len(codes)}) "
                f"to {contig.contig_id}[{first}:{last + 1}] (length {table_length})"
            )
            raise PileupBoundsError(
                f"Alignment of read {read_id} falls outside contig {contig.contig_id}"
            )

        window = codes[read_min:read_max]
        voted = window >= 0
        positions = np.arange(first, last + 1)[voted]
        # Each position appears once per read, so fancy-index increments do not collide
        contig.counts[positions, window[voted]] += 1

    def accumulate_record(self, record: ReadAlignments) -> bool:
        """
        Accumulate one parsed alignment line, decoding colour-space reads when converting.
        """
        sequence = record.sequence
        if self.mode is RunMode.COLOUR_TO_NUCLEOTIDE:
            if not record.alignments:
                return False
            if record.anchor is None or not is_colour_sequence(sequence):
                logger.debug(f"Skipping read {record.read_id}: not a complete colour-space read")
                return False
            sequence = decode_colour_read(record.anchor, sequence)
        return self.accumulate(record.read_id, sequence, record.alignments)

    def accumulate_stream(self, records: Iterable[ReadAlignments]) -> Tuple[int, int]:
        """
        Consume an alignment stream to exhaustion.

        :param records: Parsed alignment lines.
        :return: Tuple (reads_used, reads_skipped).
        """
        for record in records:
            if self.accumulate_record(record):
                self.reads_used += 1
            else:
                self.reads_skipped += 1

        logger.debug(f"Alignments referencing unknown contigs: {self.unknown_contig_hits}")
        return self.reads_used, self.reads_skipped

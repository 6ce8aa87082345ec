"""
Data models for pileup-consensus.
Defines the contig pileup, alignment records, agreement totals,
per-contig consensus results and the run configuration.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

import numpy as np

# Minimum fraction of best votes over best + runner-up votes for a contig
AGREEMENT_THRESHOLD = 0.90

# Marker for a position without any read support
UNKNOWN_BASE = 'N'


class PileupBoundsError(ValueError):
    """
    Raised when an alignment would place a base outside its contig's pileup table.
    The alignments and contigs disagree; the run cannot continue.
    """


class RunMode(Enum):
    """
    Enum representing the sequence spaces of the input contigs and of the output.
    """
    NUCLEOTIDE = "NUCLEOTIDE"
    COLOUR_SPACE = "COLOUR_SPACE"
    COLOUR_TO_NUCLEOTIDE = "COLOUR_TO_NUCLEOTIDE"

    @property
    def colour_input(self) -> bool:
        return self is not RunMode.NUCLEOTIDE

    @property
    def colour_output(self) -> bool:
        return self is RunMode.COLOUR_SPACE


class ContigStatus(Enum):
    """
    Enum representing the outcome of consensus calling for a contig.
    """
    ACCEPTED = "ACCEPTED"
    LOW_AGREEMENT_RETAINED = "LOW_AGREEMENT_RETAINED"
    LOW_AGREEMENT_DISCARDED = "LOW_AGREEMENT_DISCARDED"
    UNSUPPORTED_DISCARDED = "UNSUPPORTED_DISCARDED"

    @property
    def written(self) -> bool:
        return self in (ContigStatus.ACCEPTED, ContigStatus.LOW_AGREEMENT_RETAINED)


@dataclass(frozen=True)
class Alignment:
    """
    A single placement of a read on a contig.
    """
    contig: str
    contig_start: int
    read_start: int
    align_length: int
    read_length: int
    is_rc: bool = False

    def flip_query(self) -> 'Alignment':
        """
        Mirror the placement onto the reverse complement of the read.
        """
        query_end = self.read_start + self.align_length
        if query_end > self.read_length:
            raise PileupBoundsError(
                f"Alignment to {self.contig} ends at read offset {query_end} "
                f"beyond read length {self.read_length}"
            )
        return Alignment(
            contig=self.contig,
            contig_start=self.contig_start,
            read_start=self.read_length - query_end,
            align_length=self.align_length,
            read_length=self.read_length,
            is_rc=not self.is_rc,
        )


@dataclass
class ReadAlignments:
    """
    One line of the alignment stream: a read and all of its placements.
    """
    read_id: str
    sequence: str
    alignments: List[Alignment] = field(default_factory=list)
    anchor: Optional[str] = None


@dataclass
class ContigPileup:
    """
    A draft contig together with its per-position base-count table.
    """
    contig_id: str
    sequence: str
    coverage: int = 0
    comment: str = ""
    counts: np.ndarray = field(default=None, repr=False)

    @property
    def table_length(self) -> int:
        return len(self.counts)

    def reference_base(self, offset: int) -> str:
        """Draft symbol at offset, or the unknown marker past the end of the draft."""
        return self.sequence[offset] if offset < len(self.sequence) else UNKNOWN_BASE


@dataclass
class AgreementTotals:
    """
    Running sums of winning and runner-up votes across one contig.
    """
    best: int = 0
    second: int = 0

    def add(self, best: int, second: int):
        self.best += best
        self.second += second

    @property
    def percent_agreement(self) -> float:
        total = self.best + self.second
        if total == 0:
            return math.nan
        return self.best / total

    @property
    def sufficient(self) -> bool:
        # NaN compares False, so contigs without votes never pass
        return self.percent_agreement >= AGREEMENT_THRESHOLD


@dataclass
class ConsensusResult:
    """
    Outcome of consensus calling for a single contig.
    """
    contig_id: str
    contig_key: int
    calls: str
    consensus: str
    sequence: str
    agreement: AgreementTotals
    status: ContigStatus = ContigStatus.ACCEPTED
    repaired_bases: int = 0
    trimmed_bases: int = 0


@dataclass
class ConsensusConfig:
    """
    Run configuration assembled from the command line.
    """
    contigs_path: Path
    alignments_path: str = "-"
    out_path: Optional[Path] = None
    pileup_path: Optional[str] = None
    summary_path: Optional[Path] = None
    report_path: Optional[Path] = None
    log_path: Optional[Path] = None
    output_colour_space: bool = False
    only_variants: bool = False
    verbose: int = 0
    threads: int = 1

"""
Consensus calling for pileup-consensus.
Includes the per-position majority vote, the contig acceptance decision
and the repair of undetermined bases in colour-space-converted contigs.
"""

import logging
import zlib
from typing import Optional, Sequence, Tuple

import numpy as np

from pileup_consensus.core.encoding import COLOURS, NUCLEOTIDES, colour_to_nucleotide_space, code_to_base
from pileup_consensus.core.models import (
    AgreementTotals,
    ConsensusResult,
    ContigPileup,
    ContigStatus,
    RunMode,
    UNKNOWN_BASE,
)

logger = logging.getLogger(__name__)


def contig_key(contig_id: str) -> int:
    """
    Derive the numeric key written to the consensus FASTA.
    Decimal identifiers map to their value, anything else to its CRC-32.
    """
    if contig_id.isascii() and contig_id.isdigit():
        return int(contig_id)
    return zlib.crc32(contig_id.encode('utf-8'))


def select_base(
    counts: Sequence[int],
    totals: Optional[AgreementTotals] = None,
    colour_space: bool = False
) -> Tuple[str, int, int]:
    """
    Select the most supported symbol at one position.
    Only a strictly greater count replaces the current winner, so ties go to the lowest code (A<C<G<T).

    :param counts: Four vote counters indexed by code.
    :param totals: Optional agreement totals to add the best and runner-up votes to.
    :param colour_space: Return colour digits instead of nucleotides.
    :return: Tuple (symbol, best_votes, second_votes); symbol is N without coverage.
    """
    best_code = -1
    best = 0
    second = 0
    for code, count in enumerate(counts):
        count = int(count)
        if count > best:
            second = best
            best = count
            best_code = code
        elif count > second:
            second = count

    if totals is not None:
        totals.add(best, second)

    if best_code == -1:
        return UNKNOWN_BASE, 0, 0
    return code_to_base(best_code, colour_space), best, second


def call_positions(counts: np.ndarray, colour_space: bool = False) -> Tuple[str, AgreementTotals]:
    """
    Run the majority vote over a whole pileup table.
    Equivalent to select_base on every row: argmax keeps the first (lowest code) maximum.

    :param counts: (n, 4) array of vote counters.
    :param colour_space: Call colour digits instead of nucleotides.
    :return: Tuple (uppercase calls, agreement totals).
    """
    totals = AgreementTotals()
    if len(counts) == 0:
        return "", totals

    ordered = np.sort(counts, axis=1)
    best = ordered[:, -1]
    second = ordered[:, -2]
    totals.add(int(best.sum()), int(second.sum()))

    alphabet = np.array(list(COLOURS if colour_space else NUCLEOTIDES))
    symbols = alphabet[np.argmax(counts, axis=1)]
    symbols[best == 0] = UNKNOWN_BASE
    return ''.join(symbols), totals


def apply_case(calls: str, reference: str) -> str:
    """
    Lower-case each call whose draft base is lower case (soft-masked).
    Calls past the end of the draft stay upper case.
    """
    return ''.join(
        c.lower() if i < len(reference) and reference[i].islower() else c
        for i, c in enumerate(calls)
    )


def has_determined_base(sequence: str) -> bool:
    return any(c not in 'Nn' for c in sequence)


def fix_unknown(nt_sequence: str, cs_sequence: str) -> Tuple[str, int, int]:
    """
    Replace undetermined bases of a colour-space-converted consensus by local re-decoding.
    Terminal undetermined runs are trimmed, since they lack a preceding base to decode from.
    Every interior N is decoded from the base before it and the draft colour between them.
    An N whose draft colour is missing, or whose preceding base is still undetermined, stays N.

    :param nt_sequence: Consensus in nucleotide space (one base more than cs_sequence).
    :param cs_sequence: Draft contig in colour space.
    :return: Tuple (repaired sequence, repaired base count, trimmed base count).
    """
    determined = [i for i, base in enumerate(nt_sequence) if base not in 'Nn']
    if not determined:
        raise ValueError("Cannot repair a sequence without any determined base")

    start, end = determined[0], determined[-1]
    bases = list(nt_sequence[start:end + 1])
    trimmed = len(nt_sequence) - len(bases)

    repaired = 0
    unresolved = 0
    for i in range(1, len(bases)):
        if bases[i] in 'Nn':
            # Colour j-1 lies between decoded bases j-1 and j of the untrimmed contig
            previous, colour = bases[i - 1], cs_sequence[start + i - 1]
            if previous.upper() not in NUCLEOTIDES or colour not in COLOURS:
                unresolved += 1
                continue
            bases[i] = colour_to_nucleotide_space(previous, colour)
            repaired += 1

    if unresolved:
        logger.warning(f"{unresolved} undetermined bases could not be repaired from the draft colours")

    return ''.join(bases), repaired, trimmed


def call_contig(contig: ContigPileup, mode: RunMode) -> ConsensusResult:
    """
    Call the consensus of one contig and decide whether it is written.

    :param contig: Contig with a complete pileup table.
    :param mode: Run mode of the pileup.
    :return: ConsensusResult, repaired when converting colour space to nucleotides.
    """
    calls, totals = call_positions(contig.counts, mode.colour_output)
    consensus = apply_case(calls, contig.sequence)

    result = ConsensusResult(
        contig_id=contig.contig_id,
        contig_key=contig_key(contig.contig_id),
        calls=calls,
        consensus=consensus,
        sequence=consensus,
        agreement=totals,
    )

    if not has_determined_base(calls):
        result.status = ContigStatus.UNSUPPORTED_DISCARDED
    elif not totals.sufficient:
        if mode is RunMode.COLOUR_TO_NUCLEOTIDE:
            result.status = ContigStatus.LOW_AGREEMENT_RETAINED
        else:
            result.status = ContigStatus.LOW_AGREEMENT_DISCARDED

    if mode is RunMode.COLOUR_TO_NUCLEOTIDE and result.status.written:
        result.sequence, result.repaired_bases, result.trimmed_bases = fix_unknown(consensus, contig.sequence)

    return result


def process_contig(contig: ContigPileup, mode: RunMode, verbose: int = 0) -> ConsensusResult:
    """
    Worker entry point: call one contig and log the decision.
    """
    result = call_contig(contig, mode)

    if verbose > 0:
        if result.status is ContigStatus.UNSUPPORTED_DISCARDED:
            logger.warning(f"Contig {contig.contig_id} was not supported by a complete read and was omitted.")
        elif result.status is ContigStatus.LOW_AGREEMENT_DISCARDED:
            logger.warning(f"Contig {contig.contig_id} has less than 90% agreement and was omitted.")
        elif result.status is ContigStatus.LOW_AGREEMENT_RETAINED:
            logger.warning(f"Contig {contig.contig_id} has less than 90% agreement; unknown bases will be repaired.")

    if result.repaired_bases or result.trimmed_bases:
        logger.debug(
            f"Contig {contig.contig_id}: repaired {result.repaired_bases} and "
            f"trimmed {result.trimmed_bases} undetermined bases"
        )
    return result

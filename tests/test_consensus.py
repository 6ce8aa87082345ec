import math
import zlib

import numpy as np
import pytest
from pileup_consensus.core.consensus import (
    apply_case,
    call_contig,
    call_positions,
    contig_key,
    fix_unknown,
    process_contig,
    select_base,
)
from pileup_consensus.core.models import (
    AgreementTotals,
    Alignment,
    ContigStatus,
    ReadAlignments,
    RunMode,
)
from pileup_consensus.core.pileup import PileupAccumulator

def pile_reads(sequence, reads, contig_id="ctg1"):
    acc = PileupAccumulator(RunMode.NUCLEOTIDE)
    contig = acc.register_contig(contig_id, sequence)
    for i, read in enumerate(reads):
        acc.accumulate(f"r{i}", read, [Alignment(contig_id, 0, 0, len(read), len(read))])
    return contig

def test_select_base_without_coverage():
    totals = AgreementTotals()
    assert select_base([0, 0, 0, 0], totals) == ('N', 0, 0)
    assert totals.best == 0
    assert totals.second == 0

def test_select_base_strict_winner():
    assert select_base([3, 7, 2, 0]) == ('C', 7, 3)
    assert select_base([0, 1, 0, 6]) == ('T', 6, 1)

def test_select_base_ties_go_to_lowest_code():
    assert select_base([5, 0, 0, 5]) == ('A', 5, 5)
    assert select_base([0, 4, 4, 1]) == ('C', 4, 4)
    assert select_base([2, 2, 2, 2]) == ('A', 2, 2)

def test_select_base_runner_up_after_winner():
    # The runner-up is the second-highest counter even when it follows the winner
    assert select_base([5, 3, 3, 0]) == ('A', 5, 3)

def test_select_base_accumulates_totals():
    totals = AgreementTotals()
    select_base([9, 1, 0, 0], totals)
    select_base([0, 0, 4, 0], totals)
    assert (totals.best, totals.second) == (13, 1)

def test_select_base_colour_space():
    assert select_base([0, 0, 9, 1], colour_space=True) == ('2', 9, 1)

def test_call_positions_matches_select_base():
    rng = np.random.default_rng(7)
    counts = rng.integers(0, 4, size=(200, 4)).astype(np.uint32)
    calls, totals = call_positions(counts)

    expected = AgreementTotals()
    expected_calls = ''.join(select_base(row, expected)[0] for row in counts)
    assert calls == expected_calls
    assert (totals.best, totals.second) == (expected.best, expected.second)

def test_agreement_threshold_is_inclusive():
    assert AgreementTotals(best=9, second=1).sufficient
    assert not AgreementTotals(best=89, second=11).sufficient

def test_agreement_without_votes_is_insufficient():
    totals = AgreementTotals()
    assert math.isnan(totals.percent_agreement)
    assert not totals.sufficient

def test_identical_reads_accepted():
    contig = pile_reads("ACGT", ["ACGT"] * 10)
    result = call_contig(contig, RunMode.NUCLEOTIDE)

    assert result.sequence == "ACGT"
    assert result.agreement.percent_agreement == 1.0
    assert result.status is ContigStatus.ACCEPTED
    assert contig.counts.sum(axis=1).tolist() == [10, 10, 10, 10]

def test_tied_position_resolves_to_a():
    contig = pile_reads("ACGT", ["ACGT"] * 5 + ["TCGT"] * 5)
    assert select_base(contig.counts[0]) == ('A', 5, 5)

    result = call_contig(contig, RunMode.NUCLEOTIDE)
    assert result.calls == "ACGT"
    # Position 0 adds 5 best and 5 second; the others add 10 best each
    assert (result.agreement.best, result.agreement.second) == (35, 5)
    assert result.status is ContigStatus.LOW_AGREEMENT_DISCARDED

def test_boundary_agreement_accepted():
    contig = pile_reads("A", ["A"] * 9 + ["C"])
    result = call_contig(contig, RunMode.NUCLEOTIDE)
    assert result.agreement.percent_agreement == pytest.approx(0.9)
    assert result.status is ContigStatus.ACCEPTED

def test_unsupported_contig_dropped():
    contig = pile_reads("ACGT", [])
    result = call_contig(contig, RunMode.NUCLEOTIDE)
    assert result.sequence == "NNNN"
    assert result.status is ContigStatus.UNSUPPORTED_DISCARDED
    assert not result.status.written

def test_case_follows_draft():
    contig = pile_reads("acGTn", ["ACGTA"] * 3)
    result = call_contig(contig, RunMode.NUCLEOTIDE)
    assert result.calls == "ACGTA"
    assert result.sequence == "acGTa"

def test_apply_case_past_draft_end():
    assert apply_case("ACGT", "ac") == "acGT"

def test_fix_unknown_interior():
    # C (1) xor colour 3 = G (2)
    assert fix_unknown("ACNT", "131") == ("ACGT", 1, 0)

def test_fix_unknown_trims_terminal_unknowns():
    assert fix_unknown("NACNTN", "01311") == ("ACGT", 1, 2)

def test_fix_unknown_consecutive_unknowns():
    # A xor 1 = C, then C xor 2 = T
    assert fix_unknown("ANNT", "123") == ("ACTT", 2, 0)

def test_fix_unknown_without_determined_base():
    with pytest.raises(ValueError):
        fix_unknown("NNN", "00")

def test_fix_unknown_missing_draft_colour(caplog):
    # The first N has no draft colour; the second then has no determined base before it
    assert fix_unknown("ANNT", ".23") == ("ANNT", 0, 0)
    assert "could not be repaired" in caplog.text

def test_colour_contig_repaired():
    # Draft ACGTA in colour space is 1313; reads cover positions 0-1 and 3-4 only
    acc = PileupAccumulator(RunMode.COLOUR_TO_NUCLEOTIDE)
    contig = acc.register_contig("ctg1", "1313")
    acc.accumulate_record(ReadAlignments("r1", "1", [Alignment("ctg1", 0, 0, 1, 1)], anchor="A"))
    acc.accumulate_record(ReadAlignments("r2", "3", [Alignment("ctg1", 3, 0, 1, 1)], anchor="T"))

    result = call_contig(contig, RunMode.COLOUR_TO_NUCLEOTIDE)
    assert result.calls == "ACNTA"
    assert result.status is ContigStatus.ACCEPTED
    assert result.sequence == "ACGTA"
    assert result.repaired_bases == 1
    assert 'N' not in result.sequence

@pytest.mark.parametrize("draft", ["1N13", "1.13"])
def test_colour_contig_undetermined_draft_colour_left_unknown(draft):
    # The uncovered base sits behind a draft colour that cannot be decoded, so it stays N
    acc = PileupAccumulator(RunMode.COLOUR_TO_NUCLEOTIDE)
    contig = acc.register_contig("ctg1", draft)
    acc.accumulate_record(ReadAlignments("r1", "1", [Alignment("ctg1", 0, 0, 1, 1)], anchor="A"))
    acc.accumulate_record(ReadAlignments("r2", "3", [Alignment("ctg1", 3, 0, 1, 1)], anchor="T"))

    result = call_contig(contig, RunMode.COLOUR_TO_NUCLEOTIDE)
    assert result.calls == "ACNTA"
    assert result.status is ContigStatus.ACCEPTED
    assert result.sequence == "ACNTA"
    assert result.repaired_bases == 0
    assert result.trimmed_bases == 0

def test_colour_contig_low_agreement_retained():
    acc = PileupAccumulator(RunMode.COLOUR_TO_NUCLEOTIDE)
    contig = acc.register_contig("ctg1", "1")
    for i in range(5):
        acc.accumulate_record(ReadAlignments(f"c{i}", "1", [Alignment("ctg1", 0, 0, 1, 1)], anchor="A"))
        acc.accumulate_record(ReadAlignments(f"g{i}", "2", [Alignment("ctg1", 0, 0, 1, 1)], anchor="A"))

    result = call_contig(contig, RunMode.COLOUR_TO_NUCLEOTIDE)
    assert result.agreement.percent_agreement == pytest.approx(0.75)
    assert result.status is ContigStatus.LOW_AGREEMENT_RETAINED
    assert result.status.written
    assert result.sequence == "AC"

def test_colour_space_output_calls_colours():
    acc = PileupAccumulator(RunMode.COLOUR_SPACE)
    contig = acc.register_contig("ctg1", "0123")
    acc.accumulate_record(ReadAlignments("r1", "0123", [Alignment("ctg1", 0, 0, 4, 4)], anchor="A"))

    result = call_contig(contig, RunMode.COLOUR_SPACE)
    assert result.sequence == "0123"
    assert result.status is ContigStatus.ACCEPTED

def test_process_contig_warns_when_verbose(caplog):
    contig = pile_reads("ACGT", [])
    with caplog.at_level("WARNING"):
        process_contig(contig, RunMode.NUCLEOTIDE, verbose=0)
    assert not caplog.records

    with caplog.at_level("WARNING"):
        process_contig(contig, RunMode.NUCLEOTIDE, verbose=1)
    assert "not supported" in caplog.text

def test_contig_key():
    assert contig_key("42") == 42
    assert contig_key("ctg1") == zlib.crc32(b"ctg1")
    assert contig_key("ctg1") == contig_key("ctg1")

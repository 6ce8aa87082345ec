"""
Statistics utilities for pileup-consensus.
Includes Nx assembly statistics and per-contig pileup summaries.
"""

import math
from typing import Dict, List

import numpy as np

from pileup_consensus.core.models import ConsensusResult, ContigPileup


def calculate_assembly_stats(lengths: List[int]) -> Dict[str, int]:
    """
    Calculate N50, N90 (with their L counts), total bases and contig count.

    :param lengths: List of contig lengths.
    :return: Dictionary with stats.
    """
    stats = {"Total Bases": int(sum(lengths)), "Num Contigs": len(lengths)}
    if not lengths:
        return stats | {"N50": 0, "L50": 0, "N90": 0, "L90": 0, "Longest": 0}

    lengths_sorted = np.sort(np.asarray(lengths))[::-1]
    cumulative = np.cumsum(lengths_sorted)
    for nx in (50, 90):
        # First contig at which the cumulative length reaches x% of the total
        index = int(np.searchsorted(cumulative, cumulative[-1] * nx / 100.0))
        stats[f"N{nx}"] = int(lengths_sorted[index])
        stats[f"L{nx}"] = index + 1
    stats["Longest"] = int(lengths_sorted[0])
    return stats


def mean_depth(contig: ContigPileup) -> float:
    if contig.table_length == 0:
        return 0.0
    return float(contig.counts.sum(axis=1).mean())


def summarize_result(contig: ContigPileup, result: ConsensusResult) -> Dict[str, object]:
    """
    Flatten a contig and its consensus outcome into one summary row.
    """
    agreement = result.agreement.percent_agreement
    return {
        'contig_id': contig.contig_id,
        'contig_key': result.contig_key,
        'status': result.status.value,
        'draft_length': len(contig.sequence),
        'table_length': contig.table_length,
        'output_length': len(result.sequence) if result.status.written else 0,
        'mean_depth': round(mean_depth(contig), 3),
        'best_votes': result.agreement.best,
        'second_votes': result.agreement.second,
        'percent_agreement': None if math.isnan(agreement) else round(agreement, 6),
        'repaired_bases': result.repaired_bases,
        'trimmed_bases': result.trimmed_bases,
    }

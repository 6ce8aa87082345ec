"""
Report generation module for pileup-consensus.
Writes the consensus FASTA, the positional pileup, the verbose diagnostic table,
the contig summary TSV and the interactive HTML report.
"""

import math
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
import plotly.graph_objects as go
from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord
from jinja2 import Environment, FileSystemLoader

from pileup_consensus.core.encoding import NUCLEOTIDES, base_to_code, code_to_base, nucleotide_to_colour_space
from pileup_consensus.core.models import (
    AGREEMENT_THRESHOLD,
    ConsensusResult,
    ContigPileup,
    ContigStatus,
    RunMode,
)
from pileup_consensus.utils.stats import calculate_assembly_stats, mean_depth, summarize_result

# Placeholder Phred values for the genotype, reference and mapping quality columns
PLACEHOLDER_QUALITY = 25


def consensus_record(contig: ContigPileup, result: ConsensusResult) -> SeqRecord:
    """
    Build the output FASTA record: '>key length coverage [comment]'.
    """
    key = str(result.contig_key)
    title = f"{key} {len(result.sequence)} {contig.coverage}"
    if contig.comment:
        title += f" {contig.comment}"
    return SeqRecord(Seq(result.sequence), id=key, description=title)


def write_consensus_fasta(output_fasta: Path, pairs: Iterable[Tuple[ContigPileup, ConsensusResult]]) -> int:
    """
    Write the consensus of every written contig to a FASTA file.

    :param output_fasta: Path to the output FASTA.
    :param pairs: (contig, result) pairs in output order.
    :return: Number of records written.
    """
    records = [consensus_record(contig, result) for contig, result in pairs if result.status.written]
    with open(output_fasta, "w", encoding='utf-8') as f:
        SeqIO.write(records, f, "fasta")
    return len(records)


def encode_counts(counts: Sequence[int], reference: str, colour_space: bool = False) -> str:
    """
    Render vote counters as repeated symbols.
    With a nucleotide reference, votes for the reference base are rendered as '.' after the others.
    """
    folded = reference.upper()
    if len(folded) == 1 and folded in NUCLEOTIDES:
        ref_code = base_to_code(folded)
        rendered = ''.join(
            code_to_base(code) * int(count)
            for code, count in enumerate(counts) if code != ref_code
        )
        return rendered + '.' * int(counts[ref_code])
    return ''.join(code_to_base(code, colour_space) * int(count) for code, count in enumerate(counts))


def format_pileup_line(
    contig_id: str,
    position: int,
    reference: str,
    call: str,
    counts: Sequence[int],
    only_variants: bool = False,
    colour_space: bool = False
) -> Optional[str]:
    """
    Format one pileup row, or return None when variants-only filtering suppresses it.

    :param contig_id: Contig identifier.
    :param position: 0-based position in the pileup table.
    :param reference: Draft symbol at the position.
    :param call: Uppercase consensus call.
    :param counts: Four vote counters.
    :param only_variants: Suppress rows where the call matches the reference.
    :param colour_space: Counters are colours rather than nucleotides.
    :return: Tab-separated line without newline, or None.
    """
    if only_variants and reference.upper() == call:
        return None
    fields = [
        contig_id,
        position + 1,
        reference,
        call,
        PLACEHOLDER_QUALITY,
        PLACEHOLDER_QUALITY,
        PLACEHOLDER_QUALITY,
        int(sum(int(c) for c in counts)),
        encode_counts(counts, reference, colour_space),
    ]
    return '\t'.join(str(f) for f in fields)


def write_pileup(
    out: IO[str],
    contig: ContigPileup,
    result: ConsensusResult,
    only_variants: bool = False,
    colour_space: bool = False
) -> int:
    """
    Write the pileup rows of one contig.

    :return: Number of rows written.
    """
    written = 0
    for position, counts in enumerate(contig.counts):
        line = format_pileup_line(
            contig.contig_id,
            position,
            contig.reference_base(position),
            result.calls[position],
            counts,
            only_variants,
            colour_space,
        )
        if line is not None:
            out.write(line + '\n')
            written += 1
    return written


def write_diagnostics(out: IO[str], contig: ContigPileup, result: ConsensusResult, mode: RunMode):
    """
    Write the verbose per-position table: key, table length, offset, call, expected, counts.
    When converting from colour space the call is the colour between consecutive consensus bases,
    so it can be compared with the draft colour.
    """
    if not result.status.written:
        return
    n = contig.table_length
    last = n - 1 if mode is RunMode.COLOUR_TO_NUCLEOTIDE else n
    for i in range(last):
        if mode is RunMode.COLOUR_TO_NUCLEOTIDE:
            call = nucleotide_to_colour_space(result.consensus[i], result.consensus[i + 1])
        else:
            call = result.consensus[i]
        counts = ' '.join(str(int(c)) for c in contig.counts[i])
        out.write(f"{result.contig_key} {n} {i} {call} {contig.reference_base(i)} {counts}\n")


def write_summary(output_tsv: Path, pairs: Iterable[Tuple[ContigPileup, ConsensusResult]]) -> pd.DataFrame:
    """
    Write one summary row per contig to a TSV file.
    """
    df_summary = pd.DataFrame([summarize_result(contig, result) for contig, result in pairs])
    df_summary.to_csv(output_tsv, sep='\t', index=False, encoding='utf-8')
    return df_summary


def generate_report(
    pairs: List[Tuple[ContigPileup, ConsensusResult]],
    output_html: Path,
    mode: RunMode,
    run_parameters: Dict[str, Any] = None
):
    """
    Generate the interactive HTML report.

    :param pairs: (contig, result) pairs for every contig.
    :param output_html: Path of the HTML file.
    :param mode: Run mode, shown in the report.
    :param run_parameters: Dictionary of configurable parameters used for the run.
    """
    output_html.parent.mkdir(parents=True, exist_ok=True)

    stats_draft = calculate_assembly_stats([len(c.sequence) for c, _ in pairs])
    stats_consensus = calculate_assembly_stats([len(r.sequence) for _, r in pairs if r.status.written])

    status_counts = {status.value: sum(1 for _, r in pairs if r.status is status) for status in ContigStatus}
    repaired_total = sum(r.repaired_bases for _, r in pairs)

    agreements = [r.agreement.percent_agreement for _, r in pairs]
    agreements = [a for a in agreements if not math.isnan(a)]

    # Agreement Plot
    fig_agreement = go.Figure()
    if agreements:
        fig_agreement.add_trace(go.Histogram(x=agreements, name='Percent Agreement', nbinsx=50))
        fig_agreement.add_vline(x=AGREEMENT_THRESHOLD, line_width=3, line_dash="dash", line_color="red",
                                annotation_text=f"Threshold: {AGREEMENT_THRESHOLD:.2f}")
    fig_agreement.update_layout(title="Per-Contig Agreement", xaxis_title="Best / (Best + Second)", yaxis_title="Contigs")
    agreement_plot_json = fig_agreement.to_json()

    # Depth Plot
    status_colors = {
        ContigStatus.ACCEPTED: 'blue',
        ContigStatus.LOW_AGREEMENT_RETAINED: 'green',
        ContigStatus.LOW_AGREEMENT_DISCARDED: 'red',
        ContigStatus.UNSUPPORTED_DISCARDED: 'orange'
    }
    fig_depth = go.Figure()
    for status in ContigStatus:
        status_pairs = [(c, r) for c, r in pairs if r.status is status]
        if not status_pairs:
            continue
        fig_depth.add_trace(go.Scatter(
            x=[c.table_length for c, _ in status_pairs],
            y=[mean_depth(c) for c, _ in status_pairs],
            mode='markers',
            name=status.value,
            marker=dict(color=status_colors.get(status, 'gray')),
            text=[c.contig_id for c, _ in status_pairs],
            hoverinfo='text+x+y'
        ))
    fig_depth.update_layout(
        title="Mean Read Depth vs. Contig Length",
        xaxis_type="log",
        xaxis_title="Contig Length (positions)",
        yaxis_title="Mean Depth"
    )
    depth_plot_json = fig_depth.to_json()

    template_dir = Path(__file__).parent / 'templates'
    env = Environment(loader=FileSystemLoader(str(template_dir)), autoescape=True)
    template = env.get_template('report.html')

    html_content = template.render(
        mode=mode.value,
        stats_draft=stats_draft,
        stats_consensus=stats_consensus,
        status_counts=status_counts,
        repaired_total=repaired_total,
        agreement_plot_json=agreement_plot_json,
        depth_plot_json=depth_plot_json,
        agreement_threshold=AGREEMENT_THRESHOLD,
        run_parameters=run_parameters if run_parameters else {}
    )

    with open(output_html, 'w', encoding='utf-8') as f:
        f.write(html_content)

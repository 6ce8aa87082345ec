"""
Main entry point for the pileup-consensus command-line tool.
This module orchestrates the consensus pipeline, from reading contigs and
alignments to writing the consensus sequences and pileup reports.
"""

import argparse
import logging
import multiprocessing
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from pileup_consensus.core.consensus import process_contig
from pileup_consensus.core.models import ConsensusConfig, ConsensusResult, ContigPileup
from pileup_consensus.parsers.alignment_parser import parse_alignments
from pileup_consensus.parsers.fasta_parser import read_contigs
from pileup_consensus.utils.files import open_output
from pileup_consensus.utils.logging import setup_logging, worker_configurer
from pileup_consensus.visualization.report_generator import (
    generate_report,
    write_consensus_fasta,
    write_diagnostics,
    write_pileup,
    write_summary,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pileup-consensus",
        description="pileup-consensus: Call a consensus at each position of each contig from read alignments.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Mandatory
    parser.add_argument("contigs", help="Draft contigs (FASTA, optionally gzipped)")

    # Inputs
    parser.add_argument("-a", "--alignments", default="-",
                        help="Alignment stream with read sequences ('-' for standard input)")

    # Outputs
    parser.add_argument("-o", "--out", help="Write the consensus contigs in FASTA format to this file")
    parser.add_argument("-p", "--pileup", help="Write the pileup to this path ('-' for standard output)")
    parser.add_argument("--summary", help="Write a per-contig summary TSV to this path")
    parser.add_argument("--report", help="Write an interactive HTML report to this path")
    parser.add_argument("--log", help="Write a DEBUG-level log to this file")

    # Configurable
    space = parser.add_mutually_exclusive_group()
    space.add_argument("--nt", dest="output_colour_space", action="store_false",
                       help="Output nucleotide contigs")
    space.add_argument("--cs", dest="output_colour_space", action="store_true",
                       help="Output colour-space contigs")
    parser.set_defaults(output_colour_space=False)
    parser.add_argument("-V", "--variants", action="store_true", help="Print only variants in the pileup")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Display warnings (-v) and the per-position diagnostic table (-vv)")
    parser.add_argument("--threads", type=int, default=1, help="Number of CPU cores for consensus calling")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> ConsensusConfig:
    """
    Parse the command line into a ConsensusConfig.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.out and not args.pileup:
        parser.error("missing -o,--out or -p,--pileup option")
    if args.threads < 1:
        parser.error("--threads must be at least 1")

    return ConsensusConfig(
        contigs_path=Path(args.contigs),
        alignments_path=args.alignments,
        out_path=Path(args.out) if args.out else None,
        pileup_path=args.pileup,
        summary_path=Path(args.summary) if args.summary else None,
        report_path=Path(args.report) if args.report else None,
        log_path=Path(args.log) if args.log else None,
        output_colour_space=args.output_colour_space,
        only_variants=args.variants,
        verbose=args.verbose,
        threads=args.threads,
    )


def run(config: ConsensusConfig, log_queue=None) -> List[Tuple[ContigPileup, ConsensusResult]]:
    """
    Run the consensus pipeline described by config.

    :param config: Run configuration.
    :param log_queue: Logging queue for pool workers; required when config.threads > 1.
    :return: (contig, result) pairs in contig order.
    """
    # Phase 1: Contigs
    logger.info("Phase 1: Reading contigs...")
    accumulator = read_contigs(config.contigs_path, config.output_colour_space)
    mode = accumulator.mode

    # Phase 2: Pileup
    logger.info("Phase 2: Building the pileup from alignments...")
    used, skipped = accumulator.accumulate_stream(parse_alignments(config.alignments_path, mode.colour_input))
    logger.info(f"Reads piled up: {used}; reads skipped: {skipped}")

    # Phase 3: Consensus calling, independent per contig
    logger.info("Phase 3: Calling consensus...")
    contigs = list(accumulator)
    if config.threads > 1 and log_queue is not None:
        with multiprocessing.Pool(config.threads, initializer=worker_configurer, initargs=(log_queue,)) as pool:
            results = pool.starmap(process_contig, [(c, mode, config.verbose) for c in contigs])
    else:
        results = [process_contig(c, mode, config.verbose) for c in contigs]
    pairs = list(zip(contigs, results))

    num_written = sum(1 for r in results if r.status.written)
    num_ignored = len(results) - num_written
    logger.info(f"Contigs passing consensus: {num_written}; ignored: {num_ignored}")

    # Phase 4: Outputs
    logger.info("Phase 4: Writing outputs...")
    if config.out_path is not None:
        written = write_consensus_fasta(config.out_path, pairs)
        logger.info(f"Wrote {written} consensus contigs to {config.out_path}")

    if config.pileup_path:
        with open_output(config.pileup_path) as pileup_out:
            for contig, result in pairs:
                write_pileup(pileup_out, contig, result, config.only_variants, mode.colour_output)

    if config.verbose > 1:
        for contig, result in pairs:
            write_diagnostics(sys.stdout, contig, result, mode)
        sys.stdout.flush()

    if config.summary_path is not None:
        write_summary(config.summary_path, pairs)

    if config.report_path is not None:
        generate_report(pairs, config.report_path, mode, run_parameters={
            "Contigs": str(config.contigs_path),
            "Alignments": config.alignments_path,
            "Colour-space output": config.output_colour_space,
            "Variants only": config.only_variants,
            "Threads": config.threads,
        })

    return pairs


def main(argv: Optional[Sequence[str]] = None):
    config = parse_args(argv)
    log_queue, log_listener = setup_logging(config.log_path, config.verbose)

    try:
        logger.info("Starting pileup-consensus...")
        run(config, log_queue)
        logger.info("Consensus complete.")
    except Exception as e:
        logger.error(f"Critical failure: {e}")
        sys.exit(1)
    finally:
        log_listener.stop()


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from . import __version__
from .config import STRINGENCIES, FinderConfig
from .coordinator import OutputPaths, plan_run, run_dark_region_finder
from .errors import DarkRegionError
from .models import CATEGORIES
from .plotting import plot_bases_by_category, plot_region_length_hist
from .report import render_report
from .summary import summarize_bed
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, DarkRegionError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None and log_path.exists():
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _resolve_output(outdir: Path, name: str) -> Path:
    p = Path(name).expanduser()
    return p if p.is_absolute() else outdir / p


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="darkregionfinder",
        description=(
            "DarkRegionFinder: report 'dark' genomic regions (too few reads, or reads with "
            "ambiguous alignments) and 'incomplete' regions (reference bases unknown) "
            "from a sorted, indexed BAM/CRAM."
        ),
    )
    p.add_argument("--version", action="version", version=f"darkregionfinder {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference and BAM for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")

    # -----------------
    # find
    # -----------------
    f = sub.add_parser(
        "find",
        help="Scan the genome and write low-coverage, low-MAPQ and incomplete BED files.",
    )
    io_args = f.add_argument_group("input/output arguments")
    io_args.add_argument(
        "-i", "--bam", required=True, type=_path_exists, help="Input BAM/CRAM (sorted, indexed)."
    )
    io_args.add_argument(
        "-g",
        "--ref",
        required=True,
        type=_path_exists,
        help="Reference FASTA the reads were aligned to (indexed with samtools faidx).",
    )
    io_args.add_argument("-o", "--outdir", required=True, help="Output directory.")
    io_args.add_argument(
        "-c",
        "--low-coverage-bed",
        default="low_coverage.dark.bed",
        help="Low-coverage output (relative paths go under --outdir; '.gz' compresses).",
    )
    io_args.add_argument(
        "-a",
        "--low-mapq-bed",
        default="low_mapq.dark.bed",
        help="Low-MAPQ output (relative paths go under --outdir; '.gz' compresses).",
    )
    io_args.add_argument(
        "-n",
        "--incomplete-bed",
        default="incomplete.bed",
        help="Incomplete-region output (relative paths go under --outdir; '.gz' compresses).",
    )
    io_args.add_argument(
        "-L",
        "--interval-list",
        nargs="+",
        default=None,
        help="Restrict the scan to these intervals (contig, contig:start or contig:start-end; "
        "1-based, inclusive). Overlapping intervals are merged.",
    )
    io_args.add_argument("--no-header", action="store_true", help="Do not write a '#' header line.")
    io_args.add_argument("--no-report", action="store_true", help="Skip plots and report.html.")

    drf = f.add_argument_group("dark region arguments")
    drf.add_argument(
        "-s",
        "--min-region-size",
        type=int,
        default=1,
        help="Minimum run length (bases) written to any output. Rows are still per base.",
    )
    drf.add_argument(
        "-t",
        "--mapq-threshold",
        type=int,
        default=9,
        help="Reads with MAPQ <= this are inadequately aligned.",
    )
    drf.add_argument(
        "-m",
        "--min-mapq-mass",
        type=int,
        default=90,
        help="Minimum percentage (>=) of reads at or below --mapq-threshold for a low-MAPQ base.",
    )
    drf.add_argument(
        "-d",
        "--min-depth",
        type=int,
        default=5,
        help="Depth (<=) at which a base is dark by coverage, regardless of MAPQ.",
    )
    drf.add_argument(
        "-e",
        "--region-exclusivity",
        action="store_true",
        help="A low-coverage base is never also reported as low-MAPQ.",
    )
    drf.add_argument(
        "--validation-stringency",
        choices=list(STRINGENCIES),
        default="STRICT",
        help="How to treat malformed alignment input.",
    )
    drf.add_argument(
        "--max-buffered-loci",
        type=int,
        default=10_000,
        help="Rows held in memory per open region before spilling to disk.",
    )

    par = f.add_argument_group("parallelism")
    par.add_argument("-j", "--threads", type=int, default=1, help="Number of genome shards/workers.")
    par.add_argument(
        "-k",
        "--tmp-dir",
        default=None,
        help="Directory for per-shard temporary files (default: system temp dir).",
    )

    f.add_argument("--dry-run", action="store_true", help="Validate inputs and print the shard plan.")
    f.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")
    f.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


def cmd_quickstart() -> int:
    print(
        """DarkRegionFinder quickstart

1) Try it on toy data:
   darkregionfinder make-toy-data --outdir toy
   darkregionfinder find --bam toy/toy.bam --ref toy/toy_ref.fa --outdir toy_out

2) Whole genome, 8 workers, gzipped outputs:
   darkregionfinder find --bam sample.bam --ref GRCh38.fa --outdir drf_out -j 8 \\
       -c low_coverage.dark.bed.gz -a low_mapq.dark.bed.gz -n incomplete.bed.gz

3) A few genes only, regions of at least 20 bp, exclusive categories:
   darkregionfinder find --bam sample.bam --ref GRCh38.fa --outdir drf_genes \\
       -L chr1:207496157-207641765 chr19:44905791-44909393 -s 20 -e
"""
    )
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _write_report(outdir: Path, run: Dict[str, object], categories: Dict[str, Dict[str, object]]) -> Path:
    plots_dir = outdir / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)

    length_png = plots_dir / "region_length_hist.png"
    bases_png = plots_dir / "bases_by_category.png"

    plot_region_length_hist(
        length_hists={name: stats["length_hist"] for name, stats in categories.items()},
        out_png=length_png,
    )
    plot_bases_by_category(
        bases={name: stats["bases"] for name, stats in categories.items()},
        out_png=bases_png,
    )

    plots_rel = {
        "length_hist": str(Path("plots") / length_png.name),
        "bases": str(Path("plots") / bases_png.name),
    }
    return render_report(
        outdir=outdir,
        version=__version__,
        run=run,
        categories=categories,
        plots=plots_rel,
    )


def cmd_find(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "find.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("darkregionfinder")
    logger.info("darkregionfinder %s", __version__)

    try:
        config = FinderConfig(
            mapq_threshold=int(args.mapq_threshold),
            min_mapq_mass=int(args.min_mapq_mass),
            min_depth=int(args.min_depth),
            min_region_size=int(args.min_region_size),
            exclusive_regions=bool(args.region_exclusivity),
            max_buffered_loci=int(args.max_buffered_loci),
            thread_count=int(args.threads),
            temp_dir=args.tmp_dir,
            validation_stringency=str(args.validation_stringency),
            write_header=not bool(args.no_header),
        )
        outputs = OutputPaths(
            low_depth=_resolve_output(outdir, args.low_coverage_bed),
            low_mapq=_resolve_output(outdir, args.low_mapq_bed),
            incomplete=_resolve_output(outdir, args.incomplete_bed),
        )

        if args.dry_run:
            plan = plan_run(
                alignment_path=args.bam,
                reference_path=args.ref,
                config=config,
                intervals=args.interval_list,
            )
            print("Dry-run: inputs look OK.")
            print(f"Contigs in alignment header: {len(plan.contigs)}")
            print(f"Bases to scan: {plan.total_bases}")
            print(f"Shards: {len(plan.shards)}")
            for i, shard in enumerate(plan.shards):
                print(f"  shard {i}: " + ", ".join(str(c) for c in shard))
            print("Planned outputs:")
            for cat in CATEGORIES:
                print(f"  {cat.value} -> {outputs.for_category(cat)}")
            if not args.no_report:
                print(f"  summary.json -> {outdir / 'summary.json'}")
                print(f"  report.html -> {outdir / 'report.html'}")
            return 0

        outdir = ensure_outdir(outdir)

        if args.resume and (outdir / "summary.json").exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(str(outdir / "summary.json"))
            return 0

        run = run_dark_region_finder(
            alignment_path=args.bam,
            reference_path=args.ref,
            outputs=outputs,
            config=config,
            intervals=args.interval_list,
            progress=True,
        )

        categories = {cat.value: summarize_bed(outputs.for_category(cat)) for cat in CATEGORIES}
        for name, stats in categories.items():
            logger.info("%s: %d region(s), %d bases", name, stats["regions"], stats["bases"])

        write_json(outdir / "summary.json", {**run, "categories": categories})

        if args.no_report:
            print(str(outdir / "summary.json"))
            return 0

        report_path = _write_report(outdir, run, categories)
        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "find":
        return cmd_find(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())

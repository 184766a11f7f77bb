from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence, Tuple

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def check_exists(path: str | Path, what: str) -> None:
    if not Path(path).exists():
        raise FileNotFoundError(f"{what} does not exist: {path}")


def check_alignment_index(aln_path: str | Path) -> None:
    """Ensure a BAM/CRAM has an index; raise FileNotFoundError with fix instructions."""
    aln = Path(aln_path)
    if aln.suffix == ".sam":
        raise ValueError(
            "SAM input cannot be scanned by region. Convert and index it first: "
            f"samtools sort -o {aln.with_suffix('.bam')} {aln} && samtools index {aln.with_suffix('.bam')}"
        )
    if aln.suffix == ".cram":
        candidates = [aln.with_suffix(aln.suffix + ".crai"), aln.with_suffix(".crai")]
    else:
        candidates = [
            aln.with_suffix(aln.suffix + ".bai"),
            aln.with_suffix(".bai"),
            aln.with_suffix(aln.suffix + ".csi"),
        ]
    if any(c.exists() for c in candidates):
        return
    raise FileNotFoundError("Alignment file is not indexed. Run: samtools index " + str(aln))


def check_reference_index(fasta_path: str | Path) -> None:
    """Ensure a FASTA has a .fai index."""
    fa = Path(fasta_path)
    if fa.with_suffix(fa.suffix + ".fai").exists():
        return
    raise FileNotFoundError("Reference FASTA is not indexed. Run: samtools faidx " + str(fa))


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def check_contig_overlap(
    alignment_contigs: Sequence[Tuple[str, int]], reference_contigs: Sequence[Tuple[str, int]]
) -> None:
    """Fail when no alignment contig is in the reference, or a shared contig differs in length.

    Individual missing contigs are tolerated (they are skipped during the scan);
    a complete mismatch almost always means the wrong reference build.
    """
    aln_names = [name for name, _ in alignment_contigs]
    ref_names = {name for name, _ in reference_contigs}
    if not aln_names:
        raise ValueError("Alignment header has no @SQ lines; nothing to scan.")
    if not ref_names.intersection(aln_names):
        raise ValueError(
            "Contig mismatch between alignments and reference "
            f"(alignment style: {detect_contig_style(aln_names)}, "
            f"reference style: {detect_contig_style(ref_names)}). "
            "Use the reference the reads were aligned to."
        )

    ref_lengths = dict(reference_contigs)
    mismatched = [
        f"{name} ({int(length)} vs {int(ref_lengths[name])})"
        for name, length in alignment_contigs
        if name in ref_lengths and int(length) != int(ref_lengths[name])
    ]
    if mismatched:
        raise ValueError(
            "Contig length mismatch between alignment header and reference: "
            + ", ".join(mismatched)
            + ". Use the reference the reads were aligned to."
        )

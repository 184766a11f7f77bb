from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pysam

from .utils import ensure_outdir, write_json

# Layout (1-based, inclusive):
#   chr1   1-100   10 reads, MAPQ 60
#   chr1 101-120   N gap, no reads
#   chr1 121-200   no reads
#   chr1 201-300   10 reads, MAPQ 0
#   chr1 301-400   10 reads, MAPQ 60
#   chr2   1-180   11 reads, MAPQ 60
#   chr2 181-200    3 reads, MAPQ 60
#   chrUn          in the BAM header only
TOY_CONTIGS = {"chr1": 400, "chr2": 200}
TOY_EXTRA_BAM_CONTIG = ("chrUn", 50)
TOY_N_GAP = (101, 120)


def _write_fasta(path: Path, seqs: Dict[str, str]) -> None:
    lines: List[str] = []
    for contig, seq in seqs.items():
        lines.append(f">{contig}")
        for i in range(0, len(seq), 60):
            lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _make_read(
    name: str,
    tid: int,
    start0: int,
    seq: str,
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 0
    a.reference_id = tid
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    return a


def _toy_reference() -> Dict[str, str]:
    chr1 = list(("ACGT" * 100)[: TOY_CONTIGS["chr1"]])
    for pos1 in range(TOY_N_GAP[0], TOY_N_GAP[1] + 1):
        chr1[pos1 - 1] = "N"
    chr2 = ("GATTACA" * 30)[: TOY_CONTIGS["chr2"]]
    return {"chr1": "".join(chr1), "chr2": chr2}


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny reference and BAM with known dark and incomplete stretches.

    The outputs include:
    - toy_ref.fa (+ .fai)
    - toy.bam (+ .bai)

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    seqs = _toy_reference()
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, seqs)
    pysam.faidx(str(ref_fa))

    extra_name, extra_len = TOY_EXTRA_BAM_CONTIG
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [
            {"SN": "chr1", "LN": TOY_CONTIGS["chr1"]},
            {"SN": "chr2", "LN": TOY_CONTIGS["chr2"]},
            {"SN": extra_name, "LN": extra_len},
        ],
    }

    def span(contig: str, start0: int, end0: int) -> str:
        return seqs[contig][start0:end0]

    reads: List[pysam.AlignedSegment] = []
    for i in range(10):
        reads.append(_make_read(f"c1_hi_{i}", 0, 0, span("chr1", 0, 100)))
        reads.append(_make_read(f"c1_mq0_{i}", 0, 200, span("chr1", 200, 300), mapq=0))
        reads.append(_make_read(f"c1_tail_{i}", 0, 300, span("chr1", 300, 400)))
    for i in range(8):
        reads.append(_make_read(f"c2_short_{i}", 1, 0, span("chr2", 0, 180)))
    for i in range(3):
        reads.append(_make_read(f"c2_full_{i}", 1, 0, span("chr2", 0, 200)))
    for i in range(2):
        reads.append(_make_read(f"un_{i}", 2, 0, "A" * 30))

    reads.sort(key=lambda r: (r.reference_id, r.reference_start))

    bam_path = outdir_p / "toy.bam"
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)

    pysam.index(str(bam_path))

    summary = {
        "ref_fa": str(ref_fa),
        "bam": str(bam_path),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary

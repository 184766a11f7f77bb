"""DarkRegionFinder: locate dark and incomplete regions of a sequenced genome.

Public API is intentionally small; most users should use the CLI:

    darkregionfinder find --bam ... --ref ... --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"

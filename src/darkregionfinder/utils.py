from __future__ import annotations

import gzip
import json
import logging
import shutil
from pathlib import Path
from typing import Any, BinaryIO, Iterable, Optional, TextIO

logger = logging.getLogger(__name__)

_COPY_BUFSIZE = 1 << 20


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def open_binmaybe_gzip(path: str | Path, mode: str = "wb", *, compress: Optional[bool] = None) -> BinaryIO:
    """Open a binary stream, gzip'd when ``compress`` is set (default: by ``.gz`` suffix)."""
    p = str(path)
    if compress is None:
        compress = p.endswith(".gz")
    if compress:
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def append_files(paths: Iterable[str | Path], out: BinaryIO) -> None:
    """Copy each file into ``out`` in order, without loading any of them whole."""
    for p in paths:
        with open(p, "rb") as src:
            shutil.copyfileobj(src, out, _COPY_BUFSIZE)

"""Inspect a single FAMOS file from the command line.

Lists the resources discovery would publish for the file and, optionally,
decodes one channel to calibrated float64 values.

Examples
--------
    python -m famos_source.scripts.inspect_famos DATA/2020-06-01_00-00-00.dat
    python -m famos_source.scripts.inspect_famos DATA/2020-06-01_00-00-00.dat --channel STTZ --head 5
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence
import logging

import numpy as np
import pandas as pd

from famos_source.ingest.discovery import discover_resources
from famos_source.ingest.famos_file import FamosFile
from famos_source.ingest.readers_famos import FamosChannelReader


def resources_frame(famos_file: FamosFile, group: str = "raw") -> pd.DataFrame:
    """One row per discovered resource, built from :meth:`Resource.to_dict`."""
    rows = []
    for r in discover_resources(famos_file, group):
        d = r.to_dict()
        rep = d["representations"][0]
        rows.append(
            {
                "id": d["id"],
                "original_name": d["properties"]["original_name"],
                "unit": d["properties"]["unit"],
                "sample_period": rep["sample_period"],
                "representation": rep["id"],
            }
        )
    return pd.DataFrame(rows, columns=["id", "original_name", "unit", "sample_period", "representation"])


def channel_summary(values: np.ndarray) -> dict:
    if values.size == 0:
        return {"count": 0, "min": float("nan"), "max": float("nan")}
    return {"count": int(values.size), "min": float(np.nanmin(values)), "max": float(np.nanmax(values))}


def main(argv: Optional[Sequence[str]] = None) -> int:
    import argparse

    p = argparse.ArgumentParser(
        prog="python -m famos_source.scripts.inspect_famos",
        description="List the resources of a FAMOS file and optionally decode one channel.",
    )
    p.add_argument("file", help="FAMOS file (.dat/.raw)")
    p.add_argument("--channel", default=None, help="Original channel name to decode")
    p.add_argument("--group", default="raw", help="File source group id assigned to discovered resources")
    p.add_argument("--head", type=int, default=10, help="Number of decoded values to print")
    p.add_argument("--verbose", action="store_true", help="Enable debug logging")
    ns = p.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    path = Path(ns.file).expanduser()
    with FamosFile.open(path) as famos_file:
        print(f"{path.name}: format version {famos_file.format_version}, "
              f"{len(famos_file.fields)} fields, {len(famos_file.all_channels())} channels"
              + (" (truncated)" if famos_file.is_truncated else ""))

        df = resources_frame(famos_file, ns.group)
        with pd.option_context("display.max_rows", None, "display.width", 160):
            print(df.to_string(index=False) if not df.empty else "<no resources>")

        if ns.channel is None:
            return 0

        channel = famos_file.find_channel(ns.channel)
        if channel is None:
            print(f"[error] channel {ns.channel!r} not found")
            return 2

        values = FamosChannelReader().decode(famos_file, channel)

    s = channel_summary(values)
    print(f"{ns.channel}: count={s['count']} min={s['min']:.6g} max={s['max']:.6g}")
    for i, v in enumerate(values[: max(ns.head, 0)]):
        print(f"  [{i}] {float(v)!r}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

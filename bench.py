#!/usr/bin/env python3
"""
Pairing benchmark:
- accelerated -> accelerated (xe2xd)
- accelerated -> reference   (xe2sd)
- reference   -> accelerated (se2xd)
- raw python-snappy block codec (baseline)

Writes/append CSV with columns:
input, pairing, ratio, comp_MBps, decomp_MBps, block_kb, compute_units,
orig_bytes, comp_bytes, status
"""
from __future__ import annotations
import argparse, csv, io, os, shutil, sys, tempfile, time
from pathlib import Path

import snappy

from snapflow.batch import batch_stats, mbps
from snapflow.core import make_config
from snapflow.flows import FlowOrchestrator
from snapflow.naming import PAIRINGS

def size_of(p: Path) -> int:
    return p.stat().st_size

def bench_pairing(input_path: Path, pairing, config):
    workdir = Path(tempfile.mkdtemp(prefix=f"snapflow-{pairing.tag}-"))
    try:
        local = workdir / input_path.name
        shutil.copyfile(input_path, local)
        rep = FlowOrchestrator(config, out=io.StringIO()).run_pairing([str(local)], pairing)
        c, d = batch_stats(rep.compress), batch_stats(rep.decompress)
        ratio = c.output_bytes / c.input_bytes if c.input_bytes else 1.0
        status = "pass" if rep.ok else "fail"
        return pairing.tag, ratio, c.e2e_mbps, d.e2e_mbps, c.output_bytes, status
    finally:
        shutil.rmtree(workdir, ignore_errors=True)

def bench_raw(input_path: Path):
    data = input_path.read_bytes()
    t0 = time.perf_counter(); comp = snappy.compress(data); t1 = time.perf_counter()
    back = snappy.decompress(comp); t2 = time.perf_counter()
    status = "pass" if back == data else "fail"
    ratio = len(comp) / len(data) if data else 1.0
    return "snappy-raw", ratio, mbps(len(data), t1 - t0), mbps(len(data), t2 - t1), len(comp), status

def main():
    ap = argparse.ArgumentParser(description="Benchmark snappy pairings")
    ap.add_argument("input", help="input file to compress")
    ap.add_argument("--csv", required=True, help="CSV output (append)")
    ap.add_argument("--block-size", type=int, default=0, help="block size selector 0-3")
    ap.add_argument("--compute-units", type=int, default=os.cpu_count() or 4)
    ap.add_argument("--only", nargs="*", default=None, help="limit pairings, e.g. --only xe2xd snappy-raw")
    args = ap.parse_args()

    ip = Path(args.input)
    if not ip.is_file() or size_of(ip) == 0:
        print(f"Input not found or empty: {ip}", file=sys.stderr); sys.exit(2)

    config = make_config(block_size=args.block_size, compute_units=args.compute_units)
    fns = [(p.tag, (lambda p=p: bench_pairing(ip, p, config))) for p in PAIRINGS]
    fns.append(("snappy-raw", lambda: bench_raw(ip)))
    if args.only:
        only = set(args.only)
        fns = [(n, f) for (n, f) in fns if n in only]
        if not fns:
            print(f"No matching pairings in --only: {args.only}", file=sys.stderr); sys.exit(2)

    rows = []
    for label, fn in fns:
        tag, ratio, cMBps, dMBps, comp_bytes, status = fn()
        print(f"{tag:12s} ratio={ratio:.3f}  comp={cMBps:.1f} MB/s  decomp={dMBps:.1f} MB/s  {status}")
        rows.append({
            "input": str(ip),
            "pairing": tag,
            "ratio": ratio,
            "comp_MBps": cMBps,
            "decomp_MBps": dMBps,
            "block_kb": config.block_size_kb,
            "compute_units": config.compute_units,
            "orig_bytes": size_of(ip),
            "comp_bytes": comp_bytes,
            "status": status,
        })

    out = Path(args.csv)
    write_header = not out.exists()
    with out.open("a", newline="") as f:
        w = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        if write_header: w.writeheader()
        for r in rows: w.writerow(r)
    if any(r["status"] != "pass" for r in rows):
        sys.exit(1)

if __name__ == "__main__":
    main()

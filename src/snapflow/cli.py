from __future__ import annotations
import argparse, sys
from .core import UsageError, make_config
from .batch import BatchAbort
from .flows import FlowOrchestrator
from .naming import DEFAULT_FLOW, pairings_for_flow
from .report import write_csv
from . import __version__

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="snapflow",
                                description="Cross-validate accelerated and reference snappy variants")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-c", "--compress", default=None, help="Compress one file to <file>.snappy")
    p.add_argument("-d", "--decompress", default=None, help="Decompress one file to <file>.orig")
    p.add_argument("-v", "--compress_decompress", default=None,
                   help="Compress, decompress and validate one file")
    p.add_argument("-l", "--file_list", default=None, help="Manifest of input files, one per line")
    p.add_argument("-x", "--flow", default=str(DEFAULT_FLOW),
                   help="Validation [0-All: 1-XcXd: 2-XcSd: 3-ScXd]")
    p.add_argument("-B", "--block_size", default="0",
                   help="Compress Block Size [0-64: 1-256: 2-1024: 3-4096]")
    p.add_argument("-cx", "--compress_xclbin", default="compress", help="Compress binary")
    p.add_argument("-dx", "--decompress_xclbin", default="decompress", help="Decompress binary")
    p.add_argument("-sx", "--single_xclbin", default=None,
                   help="Single binary serving both roles (shared device context)")
    p.add_argument("--compute-units", type=int, default=None,
                   help="Compute units per device context (env SNAPFLOW_COMPUTE_UNITS)")
    p.add_argument("--workers", type=int, default=None, help="Files processed concurrently")
    p.add_argument("--csv", default=None, help="Append per-file records to this CSV")
    p.add_argument("--verbose", action="store_true")
    return p

def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not (args.compress or args.decompress or args.compress_decompress or args.file_list):
        parser.print_help(sys.stderr)
        return 2

    try:
        config = make_config(block_size=args.block_size,
                             compress_binary=args.compress_xclbin,
                             decompress_binary=args.decompress_xclbin,
                             single_binary=args.single_xclbin,
                             compute_units=args.compute_units,
                             workers=args.workers,
                             verbose=args.verbose)
    except UsageError as e:
        print(str(e), file=sys.stderr)
        parser.print_help(sys.stderr)
        return 2

    orch = FlowOrchestrator(config)
    reports = []
    try:
        if args.file_list:
            pairings_for_flow(args.flow)
        if args.compress:
            reports.append(orch.compress_one(args.compress))
        if args.decompress:
            reports.append(orch.decompress_one(args.decompress))
        if args.compress_decompress:
            reports.append(orch.roundtrip_one(args.compress_decompress))
        if args.file_list:
            reports.extend(orch.run_file_list(args.file_list, args.flow))
    except UsageError as e:
        print(str(e), file=sys.stderr)
        return 2
    except BatchAbort as e:
        print(str(e), file=sys.stderr)
        return 1

    orch.summary(reports)
    if args.csv:
        n = write_csv(args.csv, reports)
        if args.verbose:
            print(f"INFO: csv -> {n} rows appended to {args.csv}", flush=True)
    return 0 if all(r.ok for r in reports) else 1

if __name__ == "__main__":
    raise SystemExit(main())

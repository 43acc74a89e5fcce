from __future__ import annotations
import csv
from pathlib import Path
from typing import List, NamedTuple, Sequence, TextIO

from .batch import FileRecord, batch_stats
from .core import ROLE_COMPRESS, VARIANT_ACCELERATED
from .naming import Pairing
from .validate import ERROR, FAIL, PASS, ValidationRecord

RULE = "-" * 62
WIDE_RULE = "-" * 88
STATUS = {PASS: "PASSED", FAIL: "FAILED", ERROR: "ERROR"}


class FlowReport(NamedTuple):
    pairing: Pairing
    compress: List[FileRecord]
    decompress: List[FileRecord]
    validation: List[ValidationRecord]

    def count(self, outcome: str) -> int:
        return sum(1 for v in self.validation if v.outcome == outcome)

    @property
    def codec_errors(self) -> int:
        return sum(1 for r in self.compress + self.decompress if not r.ok)

    @property
    def ok(self) -> bool:
        return self.codec_errors == 0 and all(v.outcome == PASS for v in self.validation)


def _banner(out: TextIO, title: str, rule: str = RULE) -> None:
    print("", file=out)
    print(rule, file=out)
    print(f"{title:^{len(rule)}}".rstrip(), file=out)
    print(rule, file=out)


def print_batch(out: TextIO, role: str, variant: str, records: Sequence[FileRecord]) -> None:
    step = "Compress" if role == ROLE_COMPRESS else "De-Compress"
    who = "Accelerated" if variant == VARIANT_ACCELERATED else "Reference"
    _banner(out, f"{who} {step}")
    print("", file=out)
    if role == ROLE_COMPRESS:
        print("E2E(MBps)\tKT(MBps)\tCR\tFile Size(MB)\tFile Name", file=out)
    else:
        print("E2E(MBps)\tKT(MBps)\tFile Size(MB)\tFile Name", file=out)
    print("", file=out)
    for r in records:
        if not r.ok:
            print(f"ERROR\t{r.source}: {r.error}", file=out)
            continue
        size_mb = r.input_bytes / 1_000_000
        if role == ROLE_COMPRESS:
            print(f"{r.e2e_mbps:.2f}\t\t{r.kernel_mbps:.2f}\t\t{r.ratio:.2f}\t{size_mb:.3f}\t\t{r.source}", file=out)
        else:
            print(f"{r.e2e_mbps:.2f}\t\t{r.kernel_mbps:.2f}\t\t{size_mb:.3f}\t\t{r.source}", file=out)
    st = batch_stats(records)
    ratio = f"  CR={st.input_bytes / st.output_bytes:.2f}" if role == ROLE_COMPRESS and st.output_bytes else ""
    print(f"TOTAL files={st.files} errors={st.errors} E2E={st.e2e_mbps:.2f} MB/s "
          f"KT={st.kernel_mbps:.2f} MB/s (per-file sum){ratio}", file=out)


def print_validation(out: TextIO, title: str, records: Sequence[ValidationRecord]) -> None:
    _banner(out, f"Validate: {title}", WIDE_RULE)
    print("", file=out)
    print("Status\t\tFile Name", file=out)
    print("", file=out)
    for v in records:
        line = f"{STATUS[v.outcome]}\t\t{v.original}"
        if v.outcome != PASS:
            line += f"\t({v.artifact}: {v.detail})"
        print(line, file=out)


def print_summary(out: TextIO, reports: Sequence[FlowReport]) -> None:
    _banner(out, "Summary")
    for r in reports:
        print(f"{r.pairing.tag:10s} passed={r.count(PASS)} failed={r.count(FAIL)} "
              f"error={r.count(ERROR)} codec_errors={r.codec_errors}  {r.pairing.title}", file=out)


CSV_FIELDS = ["pairing", "role", "variant", "source", "output", "input_bytes", "output_bytes",
              "ratio", "kernel_MBps", "e2e_MBps", "error"]


def write_csv(path: str, reports: Sequence[FlowReport]) -> int:
    """Append per-file records; the header is written when the file is created."""
    rows = []
    for rep in reports:
        for r in rep.compress + rep.decompress:
            rows.append({
                "pairing": rep.pairing.tag,
                "role": r.role,
                "variant": r.variant,
                "source": r.source,
                "output": r.output,
                "input_bytes": r.input_bytes,
                "output_bytes": r.output_bytes,
                "ratio": f"{r.ratio:.4f}",
                "kernel_MBps": f"{r.kernel_mbps:.2f}",
                "e2e_MBps": f"{r.e2e_mbps:.2f}",
                "error": r.error,
            })
    out = Path(path)
    write_header = not out.exists()
    with out.open("a", newline="") as f:
        w = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        if write_header: w.writeheader()
        for row in rows: w.writerow(row)
    return len(rows)

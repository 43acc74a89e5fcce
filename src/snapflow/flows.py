from __future__ import annotations
import sys
from typing import List, Optional, Sequence, TextIO

from .batch import BatchRunner, read_file_list
from .core import ROLE_COMPRESS, ROLE_DECOMPRESS, RunConfig, make_acquisition
from .naming import (COMPRESS_ONLY, DECOMPRESS_ONLY, ROUNDTRIP, Pairing, pairings_for_flow)
from .report import FlowReport, print_batch, print_summary, print_validation
from .validate import Validator


class FlowOrchestrator:
    """Run compress/decompress pairings over a file list and report the results.

    Every pairing runs the same steps: compress the whole list, decompress the
    whole list, validate every decompressed artifact against its original.
    Failed validations never stop later pairings; a BatchAbort stops the run.
    """

    def __init__(self, config: RunConfig, *, out: Optional[TextIO] = None,
                 validator: Optional[Validator] = None):
        self.config = config
        self.out = out if out is not None else sys.stdout
        self.validator = validator or Validator()

    def run(self, files: Sequence[str], flow: int) -> List[FlowReport]:
        pairings = pairings_for_flow(flow)   # UsageError before any work
        files = tuple(files)
        return [self.run_pairing(files, p) for p in pairings]

    def run_file_list(self, manifest: str, flow: int) -> List[FlowReport]:
        pairings_for_flow(flow)
        return self.run(read_file_list(manifest), flow)

    def run_pairing(self, files: Sequence[str], pairing: Pairing, *,
                    validate: bool = True) -> FlowReport:
        acquisition = make_acquisition(self.config)
        runner = BatchRunner(self.config, acquisition)
        compressed, decompressed, checked = [], [], []
        try:
            todo = list(files)
            if pairing.compress_variant:
                compressed = runner.compress(todo, pairing)
                print_batch(self.out, ROLE_COMPRESS, pairing.compress_variant, compressed)
                # a file the compressor rejected has no stream to decompress
                todo = [f for f, r in zip(todo, compressed) if r.ok]
            if pairing.decompress_variant:
                decompressed = runner.decompress(todo, pairing)
                print_batch(self.out, ROLE_DECOMPRESS, pairing.decompress_variant, decompressed)
        finally:
            acquisition.close()
        if validate and pairing.compress_variant and pairing.decompress_variant:
            checked = self.validator.validate(files, pairing)
            print_validation(self.out, pairing.title, checked)
        return FlowReport(pairing, compressed, decompressed, checked)

    # single-file modes: one-element file lists over the single-file pairings
    def compress_one(self, path: str) -> FlowReport:
        return self.run_pairing([path], COMPRESS_ONLY)

    def decompress_one(self, path: str) -> FlowReport:
        return self.run_pairing([path], DECOMPRESS_ONLY)

    def roundtrip_one(self, path: str) -> FlowReport:
        return self.run_pairing([path], ROUNDTRIP)

    def summary(self, reports: Sequence[FlowReport]) -> None:
        print_summary(self.out, reports)

from __future__ import annotations
from typing import List, NamedTuple, Sequence

from .naming import Pairing, artifact_paths

PASS = "PASS"
FAIL = "FAIL"
ERROR = "ERROR"

COMPARE_BLOCK = 1024 * 1024


class ValidationRecord(NamedTuple):
    original: str
    artifact: str
    outcome: str
    detail: str = ""


class ByteComparer:
    """In-process stand-in for ``cmp``: offset of the first differing byte, or -1."""

    step = 8192

    def compare(self, left: bytes, right: bytes) -> int:
        if left == right:
            return -1
        n = min(len(left), len(right))
        lv, rv = memoryview(left), memoryview(right)
        for i in range(0, n, self.step):
            if lv[i:i + self.step] != rv[i:i + self.step]:
                for j in range(i, min(i + self.step, n)):
                    if lv[j] != rv[j]:
                        return j
        # one is a prefix of the other
        return n


class Validator:
    def __init__(self, comparer: ByteComparer | None = None, *, block: int = COMPARE_BLOCK):
        self.comparer = comparer or ByteComparer()
        self.block = block

    def check(self, original: str, artifact: str) -> ValidationRecord:
        try:
            with open(original, "rb") as fa, open(artifact, "rb") as fb:
                offset = 0
                while True:
                    a = fa.read(self.block)
                    b = fb.read(self.block)
                    if not a and not b:
                        return ValidationRecord(original, artifact, PASS)
                    diff = self.comparer.compare(a, b)
                    if diff >= 0:
                        return ValidationRecord(original, artifact, FAIL,
                                                f"differ: byte {offset + diff + 1}")
                    offset += len(a)
        except OSError as exc:
            return ValidationRecord(original, artifact, ERROR,
                                    f"{exc.strerror or exc}: {exc.filename or artifact}")

    def validate(self, files: Sequence[str], pairing: Pairing) -> List[ValidationRecord]:
        return [self.check(f, artifact_paths(f, pairing).decompressed) for f in files]

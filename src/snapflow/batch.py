from __future__ import annotations
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, NamedTuple, Optional, Sequence, Tuple

from .core import (CodecError, ROLE_COMPRESS, ROLE_DECOMPRESS, RunConfig, make_codec)
from .naming import ArtifactPaths, Pairing, artifact_paths

MB = 1024 * 1024


def mbps(bytes_: int, secs: float) -> float:
    return (bytes_ / secs) / MB if secs > 0 else 0.0


class BatchAbort(RuntimeError):
    """Fatal I/O condition; the whole run stops."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Unable to open file: {path} ({reason})")
        self.path = path
        self.reason = reason


class FileRecord(NamedTuple):
    role: str
    variant: str
    source: str
    output: str
    input_bytes: int
    output_bytes: int
    kernel_secs: float
    e2e_secs: float
    error: str = ""
    started: float = 0.0
    finished: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.error

    @property
    def ratio(self) -> float:
        # compression ratio is always original / compressed
        if self.role == ROLE_COMPRESS:
            return self.input_bytes / self.output_bytes if self.output_bytes else 0.0
        return self.output_bytes / self.input_bytes if self.input_bytes else 0.0

    @property
    def raw_bytes(self) -> int:
        return self.input_bytes if self.role == ROLE_COMPRESS else self.output_bytes

    @property
    def kernel_mbps(self) -> float:
        return mbps(self.raw_bytes, self.kernel_secs)

    @property
    def e2e_mbps(self) -> float:
        return mbps(self.raw_bytes, self.e2e_secs)


class BatchStats(NamedTuple):
    files: int
    errors: int
    input_bytes: int
    output_bytes: int
    raw_bytes: int
    kernel_secs: float
    e2e_secs: float

    @property
    def kernel_mbps(self) -> float:
        return mbps(self.raw_bytes, self.kernel_secs)

    @property
    def e2e_mbps(self) -> float:
        return mbps(self.raw_bytes, self.e2e_secs)


def batch_stats(records: Sequence[FileRecord]) -> BatchStats:
    good = [r for r in records if r.ok]
    return BatchStats(
        files=len(records),
        errors=len(records) - len(good),
        input_bytes=sum(r.input_bytes for r in good),
        output_bytes=sum(r.output_bytes for r in good),
        raw_bytes=sum(r.raw_bytes for r in good),
        kernel_secs=sum(r.kernel_secs for r in good),
        # files may overlap when run on a pool; take the wall-clock span
        e2e_secs=(max(r.finished for r in good) - min(r.started for r in good)) if good else 0.0,
    )


def read_file_list(path: str) -> Tuple[str, ...]:
    """Manifest: one path per line; blank lines are skipped."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return tuple(line.rstrip("\r\n") for line in f if line.strip())
    except OSError as exc:
        raise BatchAbort(path, exc.strerror or str(exc)) from exc
    except UnicodeDecodeError as exc:
        raise BatchAbort(path, f"manifest is not valid UTF-8: {exc.reason}") from exc


def _check_input(path: str) -> None:
    try:
        st = os.stat(path)
    except OSError as exc:
        raise BatchAbort(path, exc.strerror or str(exc)) from exc
    if not os.path.isfile(path):
        raise BatchAbort(path, "not a regular file")
    if st.st_size == 0:
        raise BatchAbort(path, "empty file")


def _write(path: str, data: bytes) -> None:
    try:
        with open(path, "wb") as f:
            f.write(data)
    except OSError as exc:
        raise BatchAbort(path, exc.strerror or str(exc)) from exc


def _discard(*paths: str) -> None:
    # a stale artifact from an earlier run must not pass validation
    for p in paths:
        try:
            os.unlink(p)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise BatchAbort(p, exc.strerror or str(exc)) from exc


def _read(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise BatchAbort(path, exc.strerror or str(exc)) from exc


class BatchRunner:
    """Drive one codec variant over a FileList for one role."""

    def __init__(self, config: RunConfig, acquisition):
        self.config = config
        self.acquisition = acquisition

    def compress(self, files: Sequence[str], pairing: Pairing) -> List[FileRecord]:
        return self.run(ROLE_COMPRESS, pairing.compress_variant, files, pairing)

    def decompress(self, files: Sequence[str], pairing: Pairing) -> List[FileRecord]:
        return self.run(ROLE_DECOMPRESS, pairing.decompress_variant, files, pairing)

    def run(self, role: str, variant: Optional[str], files: Sequence[str],
            pairing: Pairing) -> List[FileRecord]:
        if variant is None:
            raise ValueError(f"pairing {pairing.tag} has no {role} step")
        names = [artifact_paths(f, pairing) for f in files]
        # every input must be readable before a context is loaded or an artifact written
        for n in names:
            _check_input(n.original if role == ROLE_COMPRESS else n.handoff)

        with self.acquisition.lease(role, variant) as ctx:
            codec = make_codec(variant, ctx, self.config)
            step = self._compress_one if role == ROLE_COMPRESS else self._decompress_one
            if self.config.workers <= 1 or len(names) <= 1:
                return [step(codec, n) for n in names]
            # Executor.map yields in submission order, so records stay in manifest order
            with ThreadPoolExecutor(max_workers=self.config.workers) as ex:
                return list(ex.map(lambda n: step(codec, n), names))

    def _compress_one(self, codec, names: ArtifactPaths) -> FileRecord:
        t0 = time.perf_counter()
        data = _read(names.original)
        try:
            k0 = time.perf_counter()
            out = codec.compress(data)
            k1 = time.perf_counter()
        except CodecError as exc:
            _discard(names.compressed, names.handoff, names.decompressed)
            return FileRecord(ROLE_COMPRESS, codec.variant, names.original, names.compressed,
                              len(data), 0, 0.0, 0.0, str(exc), t0, time.perf_counter())
        _write(names.compressed, out)
        if names.handoff != names.compressed:
            _write(names.handoff, out)
        t1 = time.perf_counter()
        if self.config.verbose:
            print(f"INFO: compress -> {names.original} ({len(data)} -> {len(out)} bytes)", flush=True)
        return FileRecord(ROLE_COMPRESS, codec.variant, names.original, names.compressed,
                          len(data), len(out), k1 - k0, t1 - t0, "", t0, t1)

    def _decompress_one(self, codec, names: ArtifactPaths) -> FileRecord:
        t0 = time.perf_counter()
        data = _read(names.handoff)
        try:
            k0 = time.perf_counter()
            out = codec.decompress(data)
            k1 = time.perf_counter()
        except CodecError as exc:
            _discard(names.decompressed)
            return FileRecord(ROLE_DECOMPRESS, codec.variant, names.handoff, names.decompressed,
                              len(data), 0, 0.0, 0.0, str(exc), t0, time.perf_counter())
        _write(names.decompressed, out)
        t1 = time.perf_counter()
        if self.config.verbose:
            print(f"INFO: decompress -> {names.handoff} ({len(data)} -> {len(out)} bytes)", flush=True)
        return FileRecord(ROLE_DECOMPRESS, codec.variant, names.handoff, names.decompressed,
                          len(data), len(out), k1 - k0, t1 - t0, "", t0, t1)

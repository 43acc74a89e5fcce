# Copyright 2025
"""
snapflow.core (v0.1.0)

Codec variants and device runtime for the snappy cross-validation harness.

Both variants speak the snappy framing format:
  Stream identifier chunk:
    type(u8)=0xff | len(u24 LE)=6 | "sNaPpY"
  Repeated data chunks:
    type(u8) | len(u24 LE) | body
    0x00 = compressed data, 0x01 = uncompressed data (<= 64 KiB of input each)
  A stream identifier may repeat anywhere; readers skip it.

Variants:
  reference   = python-snappy stream codec, single pass over the whole file
  accelerated = file split into blocks of block_size KiB, each block coded as
                its own framed segment on a DeviceContext compute unit;
                segments are concatenated in block order

A DeviceContext is loaded from a kernel binary identifier and only serves the
roles that binary was loaded for. Acquisition strategies decide how many
contexts exist per pairing (one shared, or one per role).
"""

from __future__ import annotations
import os
import struct
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, FrozenSet, Iterator, List, NamedTuple, Optional, Sequence

import snappy

# ----------------------------
# Constants
# ----------------------------
KiB = 1024
MiB = 1024 * KiB

VARIANT_ACCELERATED = "accelerated"
VARIANT_REFERENCE = "reference"
VARIANTS = (VARIANT_ACCELERATED, VARIANT_REFERENCE)

ROLE_COMPRESS = "compress"
ROLE_DECOMPRESS = "decompress"
ROLES = (ROLE_COMPRESS, ROLE_DECOMPRESS)

# block_size selector -> KiB
BLOCK_SIZES_KB = (64, 256, 1024, 4096)
DEFAULT_BLOCK_SIZE_KB = BLOCK_SIZES_KB[0]

DEFAULT_COMPUTE_UNITS = int(os.environ.get("SNAPFLOW_COMPUTE_UNITS", 4))

STREAM_IDENTIFIER = b"\xff\x06\x00\x00sNaPpY"
CHUNK_HDR = struct.Struct("<I")   # type(u8) | len(u24)
CHUNK_IDENTIFIER = 0xFF
FRAME_MAX = 64 * KiB              # max input bytes carried by one data chunk


# ----------------------------
# Errors
# ----------------------------
class UsageError(ValueError):
    """Bad selector or option value; no work has been done."""


class ContextError(RuntimeError):
    """Device context used outside its lifecycle or for a role it was not loaded for."""


class CodecError(RuntimeError):
    """The codec rejected its input."""


# ----------------------------
# Run configuration
# ----------------------------
class RunConfig(NamedTuple):
    block_size_kb: int = DEFAULT_BLOCK_SIZE_KB
    compress_binary: str = "compress"
    decompress_binary: str = "decompress"
    single_binary: Optional[str] = None
    compute_units: int = DEFAULT_COMPUTE_UNITS
    workers: int = 1
    verbose: bool = False

    @property
    def single_mode(self) -> bool:
        return bool(self.single_binary)


def block_size_from_selector(selector: int) -> int:
    try:
        sel = int(selector)
    except (TypeError, ValueError):
        raise UsageError(f"Invalid Block Size provided: {selector!r}") from None
    if not 0 <= sel < len(BLOCK_SIZES_KB):
        raise UsageError(f"Invalid Block Size provided: {selector}")
    return BLOCK_SIZES_KB[sel]


def make_config(*, block_size: int = 0, compress_binary: str = "compress",
                decompress_binary: str = "decompress", single_binary: Optional[str] = None,
                compute_units: Optional[int] = None, workers: Optional[int] = None,
                verbose: bool = False) -> RunConfig:
    """Validate options and freeze them. ``block_size`` is the 0-3 selector."""
    bs = block_size_from_selector(block_size)
    cu = compute_units if compute_units else DEFAULT_COMPUTE_UNITS
    if cu < 1:
        raise UsageError(f"compute units must be >= 1, got {cu}")
    w = workers if workers else 1
    if w < 1:
        raise UsageError(f"workers must be >= 1, got {w}")
    if verbose:
        mode = f"single={single_binary}" if single_binary else f"compress={compress_binary}, decompress={decompress_binary}"
        print(f"INFO: plan -> block={bs} KiB, compute_units={cu}, workers={w}, binaries: {mode}", flush=True)
    return RunConfig(bs, compress_binary, decompress_binary, single_binary or None, cu, w, verbose)


# ----------------------------
# Device runtime
# ----------------------------
class DeviceContext:
    """Runtime for the accelerated variant: a pool of compute units loaded from one binary."""

    def __init__(self, roles: Sequence[str], *, compute_units: int = DEFAULT_COMPUTE_UNITS,
                 verbose: bool = False):
        bad = [r for r in roles if r not in ROLES]
        if bad:
            raise ValueError(f"Unknown role(s): {bad}")
        self.roles: FrozenSet[str] = frozenset(roles)
        self.compute_units = max(1, int(compute_units))
        self.verbose = verbose
        self.binary: Optional[str] = None
        self._pool: Optional[ThreadPoolExecutor] = None

    @property
    def live(self) -> bool:
        return self._pool is not None

    def init(self, binary: str) -> "DeviceContext":
        if self._pool is not None:
            raise ContextError(f"context already initialized from {self.binary!r}")
        if not binary:
            raise ContextError("no binary given for device context")
        self.binary = binary
        self._pool = ThreadPoolExecutor(max_workers=self.compute_units,
                                        thread_name_prefix=f"cu-{os.path.basename(binary)}")
        if self.verbose:
            print(f"INFO: device -> init binary={binary} roles={','.join(sorted(self.roles))} "
                  f"compute_units={self.compute_units}", flush=True)
        return self

    def release(self) -> None:
        pool, self._pool = self._pool, None
        if pool is None:
            return
        pool.shutdown(wait=True)
        if self.verbose:
            print(f"INFO: device -> release binary={self.binary}", flush=True)

    def require(self, role: str) -> None:
        if self._pool is None:
            raise ContextError("device context is not initialized")
        if role not in self.roles:
            raise ContextError(f"binary {self.binary!r} was not loaded for {role}")

    def map_ordered(self, fn: Callable, items: Sequence) -> List:
        """Run fn over items on the compute units; results come back in item order."""
        if self._pool is None:
            raise ContextError("device context is not initialized")
        return list(self._pool.map(fn, items))

    def __enter__(self) -> "DeviceContext":
        return self

    def __exit__(self, *exc) -> None:
        self.release()


# ----------------------------
# Framing helpers
# ----------------------------
def split_chunks(data: bytes | memoryview) -> List[memoryview]:
    """Split a framed stream into its data chunks (header included), dropping identifiers."""
    mv = memoryview(data)
    if len(mv) < len(STREAM_IDENTIFIER) or mv[:len(STREAM_IDENTIFIER)].tobytes() != STREAM_IDENTIFIER:
        raise CodecError("stream missing snappy identifier")
    out: List[memoryview] = []
    off = 0
    n = len(mv)
    while off < n:
        if n - off < CHUNK_HDR.size:
            raise CodecError(f"truncated chunk header at offset {off}")
        (word,) = CHUNK_HDR.unpack_from(mv, off)
        ctype, size = word & 0xFF, word >> 8
        end = off + CHUNK_HDR.size + size
        if end > n:
            raise CodecError(f"truncated chunk at offset {off}")
        if ctype == CHUNK_IDENTIFIER:
            if mv[off:end].tobytes() != STREAM_IDENTIFIER:
                raise CodecError(f"invalid stream identifier at offset {off}")
        else:
            out.append(mv[off:end])
        off = end
    return out


def _frame_compress(block: memoryview) -> bytes:
    return snappy.StreamCompressor().add_chunk(block.tobytes())


def _frame_decompress(payload: bytes) -> bytes:
    d = snappy.StreamDecompressor()
    out = d.decompress(payload)
    d.flush()
    return out


# ----------------------------
# Codec variants
# ----------------------------
class ReferenceCodec:
    variant = VARIANT_REFERENCE

    def compress(self, data: bytes) -> bytes:
        try:
            return _frame_compress(memoryview(data))
        except Exception as exc:
            raise CodecError(f"reference compress failed: {exc}") from exc

    def decompress(self, data: bytes) -> bytes:
        if not data:
            return b""
        try:
            return _frame_decompress(bytes(data))
        except Exception as exc:
            raise CodecError(f"reference decompress failed: {exc}") from exc


class AcceleratedCodec:
    variant = VARIANT_ACCELERATED

    def __init__(self, ctx: DeviceContext, block_size_kb: int = DEFAULT_BLOCK_SIZE_KB):
        if block_size_kb not in BLOCK_SIZES_KB:
            raise UsageError(f"Invalid Block Size provided: {block_size_kb} KiB")
        self.ctx = ctx
        self.block = block_size_kb * KiB

    def compress(self, data: bytes) -> bytes:
        self.ctx.require(ROLE_COMPRESS)
        mv = memoryview(data)
        blocks = [mv[i:i + self.block] for i in range(0, len(mv), self.block)] or [mv[0:0]]
        try:
            parts = self.ctx.map_ordered(_frame_compress, blocks)
        except Exception as exc:
            raise CodecError(f"accelerated compress failed: {exc}") from exc
        return b"".join(parts)

    def decompress(self, data: bytes) -> bytes:
        self.ctx.require(ROLE_DECOMPRESS)
        if not data:
            return b""
        chunks = split_chunks(data)
        # one job per block's worth of 64 KiB frames
        per_job = max(1, self.block // FRAME_MAX)
        jobs = [STREAM_IDENTIFIER + b"".join(c.tobytes() for c in chunks[i:i + per_job])
                for i in range(0, len(chunks), per_job)]
        try:
            parts = self.ctx.map_ordered(_frame_decompress, jobs)
        except Exception as exc:
            raise CodecError(f"accelerated decompress failed: {exc}") from exc
        return b"".join(parts)


def make_codec(variant: str, ctx: Optional[DeviceContext], config: RunConfig):
    if variant == VARIANT_REFERENCE:
        return ReferenceCodec()
    if variant == VARIANT_ACCELERATED:
        if ctx is None:
            raise ContextError("accelerated variant needs a device context")
        return AcceleratedCodec(ctx, config.block_size_kb)
    raise ValueError(f"Unknown variant: {variant}")


# ----------------------------
# Context acquisition strategies
# ----------------------------
class PerRoleAcquisition:
    """One context per accelerated lease, loaded from that role's binary."""

    def __init__(self, compress_binary: str, decompress_binary: str, *,
                 compute_units: int = DEFAULT_COMPUTE_UNITS, verbose: bool = False):
        self.binaries = {ROLE_COMPRESS: compress_binary, ROLE_DECOMPRESS: decompress_binary}
        self.compute_units = compute_units
        self.verbose = verbose
        self.inits = 0
        self._lock = threading.Lock()

    @contextmanager
    def lease(self, role: str, variant: str) -> Iterator[Optional[DeviceContext]]:
        if variant != VARIANT_ACCELERATED:
            yield None
            return
        with self._lock:
            ctx = DeviceContext([role], compute_units=self.compute_units, verbose=self.verbose)
            ctx.init(self.binaries[role])
            self.inits += 1
            try:
                yield ctx
            finally:
                ctx.release()

    def close(self) -> None:
        pass


class SharedAcquisition:
    """One context loaded from a single binary, serving both roles until close()."""

    def __init__(self, binary: str, *, compute_units: int = DEFAULT_COMPUTE_UNITS,
                 verbose: bool = False):
        self.binary = binary
        self.compute_units = compute_units
        self.verbose = verbose
        self.inits = 0
        self._ctx: Optional[DeviceContext] = None
        self._lock = threading.Lock()

    @contextmanager
    def lease(self, role: str, variant: str) -> Iterator[Optional[DeviceContext]]:
        if variant != VARIANT_ACCELERATED:
            yield None
            return
        with self._lock:
            if self._ctx is None:
                self._ctx = DeviceContext(ROLES, compute_units=self.compute_units, verbose=self.verbose)
                self._ctx.init(self.binary)
                self.inits += 1
            yield self._ctx

    def close(self) -> None:
        with self._lock:
            ctx, self._ctx = self._ctx, None
        if ctx is not None:
            ctx.release()


def make_acquisition(config: RunConfig):
    if config.single_mode:
        return SharedAcquisition(config.single_binary, compute_units=config.compute_units,
                                 verbose=config.verbose)
    return PerRoleAcquisition(config.compress_binary, config.decompress_binary,
                              compute_units=config.compute_units, verbose=config.verbose)

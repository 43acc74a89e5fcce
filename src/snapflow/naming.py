from __future__ import annotations
from typing import NamedTuple, Optional, Tuple

from .core import UsageError, VARIANT_ACCELERATED, VARIANT_REFERENCE

FLOW_ALL = 0
DEFAULT_FLOW = 1


class Pairing(NamedTuple):
    flow: int
    tag: str
    compress_variant: Optional[str]
    decompress_variant: Optional[str]
    compress_suffix: str
    handoff_suffix: str
    decompressed_suffix: str
    title: str


class ArtifactPaths(NamedTuple):
    original: str
    compressed: str
    handoff: str
    decompressed: str


XE2XD = Pairing(1, "xe2xd", VARIANT_ACCELERATED, VARIANT_ACCELERATED,
                ".xe2xd.snappy", ".xe2xd.snappy", ".xe2xd.snappy.orig",
                "Accelerated Compress vs Accelerated Decompress")
XE2SD = Pairing(2, "xe2sd", VARIANT_ACCELERATED, VARIANT_REFERENCE,
                ".xe2sd.snappy", ".xe2sd.snappy", ".xe2sd",
                "Accelerated Compress vs Reference Decompress")
# the reference tool publishes its stream as <f>.std.snappy whatever target it was given
SE2XD = Pairing(3, "se2xd", VARIANT_REFERENCE, VARIANT_ACCELERATED,
                ".se2xd", ".std.snappy", ".std.snappy.orig",
                "Reference Compress vs Accelerated Decompress")

PAIRINGS: Tuple[Pairing, ...] = (XE2XD, XE2SD, SE2XD)

# single-file modes
COMPRESS_ONLY = Pairing(-1, "compress", VARIANT_ACCELERATED, None,
                        ".snappy", ".snappy", "", "Accelerated Compress")
DECOMPRESS_ONLY = Pairing(-1, "decompress", None, VARIANT_ACCELERATED,
                          "", "", ".orig", "Accelerated Decompress")
ROUNDTRIP = Pairing(-1, "roundtrip", VARIANT_ACCELERATED, VARIANT_ACCELERATED,
                    ".snappy", ".snappy", ".snappy.orig",
                    "Accelerated Compress vs Accelerated Decompress")

USAGE = "\n".join([
    "flow selects the compress/decompress pairing:",
    "  0 - all pairings (1, 2, 3 in order)",
    f"  1 - {XE2XD.title}",
    f"  2 - {XE2SD.title}",
    f"  3 - {SE2XD.title}",
])


def pairings_for_flow(flow) -> Tuple[Pairing, ...]:
    try:
        f = int(flow)
    except (TypeError, ValueError):
        raise UsageError(f"invalid flow {flow!r}\n{USAGE}") from None
    if f == FLOW_ALL:
        return PAIRINGS
    for p in PAIRINGS:
        if p.flow == f:
            return (p,)
    raise UsageError(f"invalid flow {flow!r}\n{USAGE}")


def artifact_paths(original: str, pairing: Pairing) -> ArtifactPaths:
    """Artifact names for one original under one pairing. Pure; touches no files."""
    return ArtifactPaths(
        original,
        original + pairing.compress_suffix,
        original + pairing.handoff_suffix,
        original + pairing.decompressed_suffix,
    )


def original_path(artifact: str, pairing: Pairing) -> str:
    """Recover the original path from any artifact name of ``pairing``."""
    suffixes = {pairing.compress_suffix, pairing.handoff_suffix, pairing.decompressed_suffix}
    for sfx in sorted(suffixes, key=len, reverse=True):
        if sfx and artifact.endswith(sfx) and len(artifact) > len(sfx):
            return artifact[:-len(sfx)]
    raise ValueError(f"{artifact!r} is not a {pairing.tag} artifact")

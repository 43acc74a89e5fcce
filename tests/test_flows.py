import io, os, pathlib
import pytest
from snapflow.batch import BatchAbort
from snapflow.core import AcceleratedCodec, CodecError, ReferenceCodec, UsageError, make_config
from snapflow.flows import FlowOrchestrator
from snapflow.naming import PAIRINGS, artifact_paths
from snapflow.validate import ERROR, FAIL, PASS

def orchestrator(**kw):
    out = io.StringIO()
    return FlowOrchestrator(make_config(**kw), out=out), out

def write_manifest(tmp_path: pathlib.Path, files) -> str:
    m = tmp_path / "files.txt"
    m.write_text("".join(f"{f}\n" for f in files))
    return str(m)

def test_single_file_flow_one(tmp_path: pathlib.Path):
    src = tmp_path / "ten.bin"
    data = os.urandom(10 * 1024)
    src.write_bytes(data)
    orch, out = orchestrator()
    reports = orch.run_file_list(write_manifest(tmp_path, [src]), 1)
    assert len(reports) == 1
    rep = reports[0]
    assert [v.outcome for v in rep.validation] == [PASS]
    names = artifact_paths(str(src), rep.pairing)
    assert os.path.getsize(names.compressed) <= len(data) + 64
    assert pathlib.Path(names.decompressed).read_bytes() == data
    text = out.getvalue()
    assert "Accelerated Compress" in text and "Accelerated De-Compress" in text
    assert f"PASSED\t\t{src}" in text

def test_missing_file_aborts_whole_run(tmp_path: pathlib.Path):
    orch, _ = orchestrator()
    manifest = write_manifest(tmp_path, [tmp_path / "does_not_exist.bin"])
    before = sorted(os.listdir(tmp_path))
    with pytest.raises(BatchAbort):
        orch.run_file_list(manifest, 0)
    assert sorted(os.listdir(tmp_path)) == before

def test_flow_zero_runs_every_pairing_in_order(tmp_path: pathlib.Path):
    files = []
    for name in ("b.txt", "a.txt"):
        p = tmp_path / name
        p.write_bytes(name.encode() * 5000)
        files.append(str(p))
    orch, out = orchestrator()
    reports = orch.run(files, 0)
    assert [r.pairing for r in reports] == list(PAIRINGS)
    records = [v for r in reports for v in r.validation]
    assert len(records) == 6
    assert all(v.outcome == PASS for v in records)
    for r in reports:
        assert [v.original for v in r.validation] == files
        for f in files:
            for name in artifact_paths(f, r.pairing)[1:]:
                assert os.path.exists(name)
    text = out.getvalue()
    assert text.index("Validate: " + PAIRINGS[0].title) < text.index("Validate: " + PAIRINGS[2].title)
    assert text.index(f"PASSED\t\t{files[0]}") < text.index(f"PASSED\t\t{files[1]}")

def test_invalid_flow_does_no_work(tmp_path: pathlib.Path):
    src = tmp_path / "x.bin"
    src.write_bytes(b"x" * 100)
    orch, out = orchestrator()
    with pytest.raises(UsageError) as ei:
        orch.run([str(src)], 5)
    for sel in "0123":
        assert f"  {sel} - " in str(ei.value)
    assert os.listdir(tmp_path) == ["x.bin"]
    assert out.getvalue() == ""

def test_mismatch_does_not_stop_later_pairings(tmp_path: pathlib.Path, monkeypatch):
    src = tmp_path / "x.bin"
    src.write_bytes(b"abcdefgh" * 4096)
    monkeypatch.setattr(ReferenceCodec, "decompress", lambda self, data: b"abcdefgX")
    orch, out = orchestrator()
    reports = orch.run([str(src)], 0)
    assert [r.validation[0].outcome for r in reports] == [PASS, FAIL, PASS]
    assert not reports[1].ok and reports[2].ok
    assert "FAILED" in out.getvalue()
    assert "differ: byte 8" in out.getvalue()

def test_codec_error_is_reported_and_batch_continues(tmp_path: pathlib.Path, monkeypatch):
    files = []
    for i in range(2):
        p = tmp_path / f"f{i}.bin"
        p.write_bytes(b"%d" % i * 10000)
        files.append(str(p))
    real = AcceleratedCodec.decompress

    def flaky(self, data):
        if data == pathlib.Path(files[0] + ".xe2xd.snappy").read_bytes():
            raise CodecError("corrupt stream")
        return real(self, data)

    monkeypatch.setattr(AcceleratedCodec, "decompress", flaky)
    orch, out = orchestrator()
    rep = orch.run(files, 1)[0]
    assert [r.ok for r in rep.decompress] == [False, True]
    assert rep.codec_errors == 1
    assert [v.outcome for v in rep.validation] == [ERROR, PASS]
    assert f"ERROR\t{files[0]}.xe2xd.snappy: corrupt stream" in out.getvalue()

def test_single_file_modes(tmp_path: pathlib.Path):
    src = tmp_path / "one.dat"
    data = b"hello snappy " * 3000
    src.write_bytes(data)
    orch, _ = orchestrator(single_binary="both")
    rep = orch.compress_one(str(src))
    assert rep.decompress == [] and rep.validation == []
    comp = tmp_path / "one.dat.snappy"
    assert comp.exists()
    orch.decompress_one(str(comp))
    assert (tmp_path / "one.dat.snappy.orig").read_bytes() == data
    (tmp_path / "one.dat.snappy.orig").unlink()
    rep = orch.roundtrip_one(str(src))
    assert [v.outcome for v in rep.validation] == [PASS]
    assert rep.ok

def test_summary_lists_each_pairing(tmp_path: pathlib.Path):
    src = tmp_path / "s.bin"
    src.write_bytes(b"s" * 2048)
    orch, out = orchestrator(block_size=3)
    orch.summary(orch.run([str(src)], 0))
    lines = [l for l in out.getvalue().splitlines() if "passed=" in l]
    assert [l.split()[0] for l in lines] == [p.tag for p in PAIRINGS]

def test_compress_failure_removes_stale_artifacts(tmp_path: pathlib.Path, monkeypatch):
    src = tmp_path / "again.bin"
    src.write_bytes(b"rerun " * 5000)
    orch, _ = orchestrator()
    assert orch.run([str(src)], 1)[0].ok
    names = artifact_paths(str(src), PAIRINGS[0])
    assert os.path.exists(names.decompressed)

    def broken(self, data):
        raise CodecError("device fault")

    monkeypatch.setattr(AcceleratedCodec, "compress", broken)
    orch, out = orchestrator()
    rep = orch.run([str(src)], 1)[0]
    assert rep.codec_errors == 1 and rep.decompress == []
    assert [v.outcome for v in rep.validation] == [ERROR]
    assert not os.path.exists(names.compressed)
    assert not os.path.exists(names.decompressed)
    assert "PASSED" not in out.getvalue()

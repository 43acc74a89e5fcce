import os, pathlib
import pytest
from snapflow.batch import MB, BatchAbort, BatchRunner, FileRecord, batch_stats, read_file_list
from snapflow.core import (ROLE_COMPRESS, VARIANT_ACCELERATED, PerRoleAcquisition, SharedAcquisition,
                           make_acquisition, make_config)
from snapflow.naming import SE2XD, XE2XD, artifact_paths

def make_files(tmp_path: pathlib.Path, n: int, size: int = 40 * 1024) -> list:
    out = []
    for i in range(n):
        p = tmp_path / f"in{i}.bin"
        p.write_bytes((b"row %d;" % i) * (size // 16) + os.urandom(size // 2))
        out.append(str(p))
    return out

def test_read_file_list(tmp_path: pathlib.Path):
    m = tmp_path / "list.txt"
    m.write_bytes(b"a.bin\r\n\nb c.bin\n  \nd.bin")
    assert read_file_list(str(m)) == ("a.bin", "b c.bin", "d.bin")
    with pytest.raises(BatchAbort):
        read_file_list(str(tmp_path / "missing.txt"))

def test_compress_then_decompress_per_role(tmp_path: pathlib.Path):
    files = make_files(tmp_path, 3)
    cfg = make_config()
    acq = make_acquisition(cfg)
    assert isinstance(acq, PerRoleAcquisition)
    runner = BatchRunner(cfg, acq)
    comp = runner.compress(files, XE2XD)
    dec = runner.decompress(files, XE2XD)
    assert acq.inits == 2
    assert [r.source for r in comp] == files
    for f, c, d in zip(files, comp, dec):
        names = artifact_paths(f, XE2XD)
        assert c.ok and d.ok
        assert c.input_bytes == os.path.getsize(f)
        assert c.output_bytes == os.path.getsize(names.compressed)
        assert d.source == names.handoff
        assert pathlib.Path(names.decompressed).read_bytes() == pathlib.Path(f).read_bytes()
        assert c.ratio > 1.0

def test_handoff_written_for_reference_compress(tmp_path: pathlib.Path):
    files = make_files(tmp_path, 1)
    runner = BatchRunner(make_config(), make_acquisition(make_config()))
    runner.compress(files, SE2XD)
    names = artifact_paths(files[0], SE2XD)
    assert pathlib.Path(names.compressed).read_bytes() == pathlib.Path(names.handoff).read_bytes()
    runner.decompress(files, SE2XD)
    assert pathlib.Path(names.decompressed).read_bytes() == pathlib.Path(files[0]).read_bytes()

def test_shared_context_spans_both_roles(tmp_path: pathlib.Path):
    files = make_files(tmp_path, 2)
    cfg = make_config(single_binary="snappy_both")
    acq = make_acquisition(cfg)
    assert isinstance(acq, SharedAcquisition)
    runner = BatchRunner(cfg, acq)
    runner.compress(files, XE2XD)
    with acq.lease(ROLE_COMPRESS, VARIANT_ACCELERATED) as ctx:
        assert ctx.live and ctx.binary == "snappy_both"
    runner.decompress(files, XE2XD)
    assert acq.inits == 1
    acq.close()
    assert not ctx.live

def test_missing_input_aborts_before_any_artifact(tmp_path: pathlib.Path):
    files = make_files(tmp_path, 2)
    files.insert(1, str(tmp_path / "ghost.bin"))
    before = sorted(os.listdir(tmp_path))
    acq = make_acquisition(make_config())
    with pytest.raises(BatchAbort) as ei:
        BatchRunner(make_config(), acq).compress(files, XE2XD)
    assert ei.value.path.endswith("ghost.bin")
    assert sorted(os.listdir(tmp_path)) == before
    assert acq.inits == 0

def test_empty_input_aborts(tmp_path: pathlib.Path):
    p = tmp_path / "empty.bin"
    p.write_bytes(b"")
    with pytest.raises(BatchAbort):
        BatchRunner(make_config(), make_acquisition(make_config())).compress([str(p)], XE2XD)

def test_parallel_files_keep_manifest_order(tmp_path: pathlib.Path):
    # larger files first so they tend to finish last
    files = []
    for i, size in enumerate([900 * 1024, 10 * 1024, 300 * 1024, 2 * 1024, 600 * 1024]):
        d = tmp_path / str(i)
        d.mkdir()
        files += make_files(d, 1, size)
    cfg = make_config(workers=4)
    runner = BatchRunner(cfg, make_acquisition(cfg))
    comp = runner.compress(files, XE2XD)
    dec = runner.decompress(files, XE2XD)
    assert [r.source for r in comp] == files
    assert [r.output for r in dec] == [artifact_paths(f, XE2XD).decompressed for f in files]
    st = batch_stats(comp)
    assert st.files == 5 and st.errors == 0
    assert st.input_bytes == sum(os.path.getsize(f) for f in files)

def test_manifest_must_be_utf8(tmp_path: pathlib.Path):
    m = tmp_path / "latin1.txt"
    m.write_bytes(b"/data/caf\xe9.bin\n")
    with pytest.raises(BatchAbort) as ei:
        read_file_list(str(m))
    assert ei.value.path == str(m)
    assert "UTF-8" in ei.value.reason

def test_batch_e2e_is_wall_clock_span():
    recs = [
        FileRecord(ROLE_COMPRESS, VARIANT_ACCELERATED, "a", "a.out", MB, MB // 2, 0.25, 1.0, "", 10.0, 11.0),
        FileRecord(ROLE_COMPRESS, VARIANT_ACCELERATED, "b", "b.out", MB, MB // 2, 0.5, 1.0, "", 10.5, 11.5),
        FileRecord(ROLE_COMPRESS, VARIANT_ACCELERATED, "c", "", MB, 0, 0.0, 0.0, "boom", 9.0, 12.0),
    ]
    st = batch_stats(recs)
    assert st.files == 3 and st.errors == 1
    # overlapping files: 1.5s of wall clock, not 2.0s of summed per-file time
    assert st.e2e_secs == pytest.approx(1.5)
    assert st.kernel_secs == pytest.approx(0.75)
    assert st.e2e_mbps == pytest.approx(2 / 1.5)
    assert batch_stats([]).e2e_secs == 0.0

import json
import os

from strip_ocr.pipeline.debug import DirectorySink, NullSink, sink_from_env


def test_null_sink_is_default(monkeypatch):
    monkeypatch.delenv("PIPELINE_DEBUG", raising=False)
    sink = sink_from_env()
    assert isinstance(sink, NullSink)
    assert not sink.enabled


def test_env_flag_selects_directory_sink(monkeypatch, tmp_path):
    monkeypatch.setenv("PIPELINE_DEBUG", "true")
    sink = sink_from_env(project_root=str(tmp_path))
    assert isinstance(sink, DirectorySink)
    assert sink.base_dir.startswith(str(tmp_path / "config" / "buffer"))


def test_directory_sink_writes_artifacts(tmp_path):
    sink = DirectorySink(project_root=str(tmp_path))
    sink.save_json("lines", [{"text": "안녕"}])
    sink.save_image("tile-0", b"\xff\xd8\xff\xd9")
    sink.save_image("lines-overlay", b"\x89PNG....")
    sink.save_text("dialogue", "안녕\n네")

    with open(os.path.join(sink.base_dir, "lines.json"), encoding="utf-8") as f:
        assert json.load(f) == [{"text": "안녕"}]
    assert os.path.exists(os.path.join(sink.base_dir, "tile-0.jpg"))
    assert os.path.exists(os.path.join(sink.base_dir, "lines-overlay.png"))
    with open(os.path.join(sink.base_dir, "dialogue.txt"), encoding="utf-8") as f:
        assert f.read() == "안녕\n네"


def test_cleanup_removes_directory_unless_kept(tmp_path):
    sink = DirectorySink(project_root=str(tmp_path), keep=False)
    sink.save_text("dialogue", "x")
    sink.cleanup()
    assert not os.path.exists(sink.base_dir)


def test_unwritable_root_falls_back_to_null_sink(monkeypatch, tmp_path):
    root = tmp_path / "not-a-dir"
    root.write_text("x")
    monkeypatch.setenv("PIPELINE_DEBUG", "1")
    sink = sink_from_env(project_root=str(root))
    assert not sink.enabled
    sink.save_text("dialogue", "x")

    direct = DirectorySink(project_root=str(root))
    assert not direct.enabled
    direct.save_json("lines", [])
    direct.save_image("tile-0", b"\xff\xd8\xff\xd9")


def test_write_failure_is_logged_not_raised(tmp_path, caplog):
    sink = DirectorySink(project_root=str(tmp_path))
    os.rmdir(sink.base_dir)
    with open(sink.base_dir, "w") as f:
        f.write("blocked")
    sink.save_text("dialogue", "x")
    assert "Failed to save debug artifact dialogue.txt" in caplog.text

from __future__ import annotations

import json
from pathlib import Path

from monitors.storefront.artifacts import (
    ArtifactRef,
    DirectoryArtifactSink,
    attach_best_effort,
    attach_json_best_effort,
)


def test_attach_writes_content_and_meta(tmp_path: Path) -> None:
    sink = DirectoryArtifactSink(tmp_path / "run")
    ref = sink.attach("network-summary", b'{"totalRequests": 3}', "application/json")

    content = Path(ref.path)
    assert content.name == "network-summary.json"
    assert content.read_bytes() == b'{"totalRequests": 3}'
    assert ref.bytes == len(b'{"totalRequests": 3}')

    meta = json.loads((content.parent / "network-summary.json.meta.json").read_text(encoding="utf-8"))
    assert meta["mimeType"] == "application/json"
    assert meta["file"] == "network-summary.json"
    assert sink.attached == [ref]


def test_explicit_file_name_is_sanitized(tmp_path: Path) -> None:
    sink = DirectoryArtifactSink(tmp_path)
    ref = sink.attach("har", b"{}", "application/json", "../network.har")
    assert Path(ref.path).parent == tmp_path
    assert Path(ref.path).name == "network.har"


def test_attach_best_effort_never_raises(tmp_path: Path) -> None:
    sink = DirectoryArtifactSink(tmp_path)
    assert attach_best_effort(sink, "bad", "not-bytes", "text/plain") is None  # type: ignore[arg-type]

    class BrokenSink:
        def attach(self, name: str, body: bytes, mime_type: str, file_name: str | None = None) -> ArtifactRef:
            raise OSError("disk full")

    assert attach_best_effort(BrokenSink(), "x", b"1", "text/plain") is None


def test_attach_json_best_effort_serializes(tmp_path: Path) -> None:
    sink = DirectoryArtifactSink(tmp_path)
    ref = attach_json_best_effort(sink, "web-vitals", {"lcp": 1200.5, "cls": 0.01})
    assert ref is not None
    assert json.loads(Path(ref.path).read_text(encoding="utf-8")) == {"lcp": 1200.5, "cls": 0.01}


def test_attach_best_effort_swallows_backend_errors() -> None:
    class RemoteSink:
        def attach(self, name: str, body: bytes, mime_type: str, file_name: str | None = None) -> ArtifactRef:
            raise RuntimeError("report server 500")

    assert attach_best_effort(RemoteSink(), "network-har", b"{}", "application/json", "network.har") is None
    assert attach_json_best_effort(RemoteSink(), "web-vitals", {"lcp": 1}) is None

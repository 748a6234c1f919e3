"""Per-journey artifact sink (summary, HAR, console, vitals, action outcomes).

The reporting layer owns where artifacts end up; ``DirectoryArtifactSink`` is
the default: one content file plus a ``.meta.json`` sidecar per artifact.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger("probe.storefront.artifacts")

_NAME_RE = re.compile(r"[^a-zA-Z0-9._-]+")

_EXT_BY_MIME = {
    "application/json": ".json",
    "text/plain": ".txt",
    "text/html": ".html",
    "image/png": ".png",
}


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _safe_name(raw: str) -> str:
    name = _NAME_RE.sub("_", raw or "artifact").strip("._")
    return (name or "artifact")[:128]


@dataclass(frozen=True)
class ArtifactRef:
    name: str
    mime_type: str
    bytes: int
    created_at: str
    path: str


class ArtifactSink(Protocol):
    def attach(self, name: str, body: bytes, mime_type: str, file_name: str | None = None) -> ArtifactRef: ...


class DirectoryArtifactSink:
    def __init__(self, base_dir: Path | str) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.attached: list[ArtifactRef] = []

    def _content_path(self, name: str, mime_type: str, file_name: str | None) -> Path:
        if file_name:
            return self.base_dir / _safe_name(file_name)
        return self.base_dir / f"{_safe_name(name)}{_EXT_BY_MIME.get(mime_type, '.bin')}"

    def attach(self, name: str, body: bytes, mime_type: str, file_name: str | None = None) -> ArtifactRef:
        if not isinstance(body, (bytes, bytearray)):
            raise TypeError("artifact body must be bytes")
        content_path = self._content_path(name, mime_type, file_name)
        content_path.write_bytes(bytes(body))
        size = content_path.stat().st_size

        meta = {
            "name": name,
            "mimeType": mime_type,
            "bytes": size,
            "createdAt": _now_iso(),
            "file": content_path.name,
        }
        meta_path = content_path.with_name(content_path.name + ".meta.json")
        meta_path.write_text(json.dumps(meta, ensure_ascii=False, indent=2), encoding="utf-8")

        ref = ArtifactRef(
            name=name,
            mime_type=mime_type,
            bytes=int(size),
            created_at=str(meta["createdAt"]),
            path=str(content_path),
        )
        self.attached.append(ref)
        return ref


def json_bytes(obj: Any) -> bytes:
    return json.dumps(obj, ensure_ascii=False, indent=2, default=str).encode("utf-8")


def attach_best_effort(
    sink: ArtifactSink,
    name: str,
    body: bytes,
    mime_type: str,
    file_name: str | None = None,
) -> ArtifactRef | None:
    """Attach and log (never raise) on failure; losing one artifact must not fail the journey."""
    try:
        return sink.attach(name, body, mime_type, file_name)
    except Exception as exc:  # noqa: BLE001
        logger.warning("artifact attach failed name=%s error=%s", name, exc)
        return None


def attach_json_best_effort(sink: ArtifactSink, name: str, obj: Any, file_name: str | None = None) -> ArtifactRef | None:
    try:
        body = json_bytes(obj)
    except (TypeError, ValueError) as exc:
        logger.warning("artifact serialization failed name=%s error=%s", name, exc)
        return None
    return attach_best_effort(sink, name, body, "application/json", file_name)


__all__ = [
    "ArtifactRef",
    "ArtifactSink",
    "DirectoryArtifactSink",
    "attach_best_effort",
    "attach_json_best_effort",
    "json_bytes",
]

"""
Local Object Loader
--------------------
Resolves ``(bucket, key)`` against a directory tree laid out like an object
store (``<root>/<bucket>/<key>``) and turns the file into RawFragments.

Supported formats:
  - .pdf   -> one fragment per page (PyMuPDF)
  - .json  -> a list of strings, or a list of {"pageContent": str | [str]}
  - other  -> the whole file as one UTF-8 fragment
"""
from __future__ import annotations

import asyncio
import json
from pathlib import Path

import fitz  # PyMuPDF
from loguru import logger

from docqa.errors import LoadFailure
from docqa.schemas import RawFragment


class LocalObjectLoader:
    """Loads documents from ``root/bucket/key`` on the local filesystem."""

    def __init__(self, root: str | Path = "data/buckets") -> None:
        self.root = Path(root)

    @classmethod
    def from_config(cls, config: dict) -> "LocalObjectLoader":
        return cls(root=config.get("loader", {}).get("root", "data/buckets"))

    def resolve(self, bucket: str, key: str) -> Path:
        bucket_dir = (self.root / bucket).resolve()
        path = (bucket_dir / key).resolve()
        if bucket_dir != path and bucket_dir not in path.parents:
            raise LoadFailure(f"Key {key!r} escapes bucket {bucket!r}")
        return path

    async def load(self, bucket: str, key: str) -> list[RawFragment]:
        path = self.resolve(bucket, key)
        logger.info(f"[Loader] Loading {bucket}/{key}")
        try:
            fragments = await asyncio.to_thread(self._read, path)
        except LoadFailure:
            raise
        except Exception as exc:
            logger.error(f"[Loader] Failed to load {bucket}/{key}: {exc}")
            raise LoadFailure(f"Could not load {bucket}/{key}: {exc}") from exc

        logger.info(f"[Loader] {bucket}/{key} -> {len(fragments)} fragment(s)")
        return fragments

    # --- Readers ---------------------------------------------------------------

    def _read(self, path: Path) -> list[RawFragment]:
        if not path.is_file():
            raise LoadFailure(f"No such object: {path}")
        suffix = path.suffix.lower()
        if suffix == ".pdf":
            return self._read_pdf(path)
        if suffix == ".json":
            return self._read_json(path)
        text = path.read_text(encoding="utf-8")
        return [RawFragment(page_content=text, metadata={"source": str(path)})]

    @staticmethod
    def _read_pdf(path: Path) -> list[RawFragment]:
        doc = fitz.open(path)
        try:
            fragments = []
            for index in range(len(doc)):
                text = doc[index].get_text() or ""
                if text.strip():
                    fragments.append(
                        RawFragment(
                            page_content=text,
                            metadata={"source": str(path), "page": index + 1},
                        )
                    )
            return fragments
        finally:
            doc.close()

    @staticmethod
    def _read_json(path: Path) -> list[RawFragment]:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise LoadFailure(f"{path.name}: expected a JSON list of fragments")

        fragments = []
        for i, item in enumerate(data):
            if isinstance(item, (str, list)):
                fragments.append(RawFragment(page_content=item, metadata={"source": str(path)}))
            elif isinstance(item, dict) and "pageContent" in item:
                fragments.append(
                    RawFragment(
                        page_content=item["pageContent"],
                        metadata={"source": str(path), **item.get("metadata", {})},
                    )
                )
            else:
                raise LoadFailure(f"{path.name}: fragment {i} has no usable content")
        return fragments

"""
Partitioned FAISS Vector Index
-------------------------------
One faiss.IndexFlatIP per (epicId, docId) partition (inner product ==
cosine similarity after L2 normalisation).  Every query carries a
QueryFilter, and an equality filter on both identity fields maps onto
exactly one partition, so a query can never see another document's
records.

Each partition stores:
  - A FAISS IndexFlatIP for vector search
  - A parallel list of record ids and metadata (same ordering as FAISS rows)

Persistence (when opened with a path):
  - <dir>/index_manifest.json        -> dimensions + partition listing
  - <dir>/<partition>/faiss.index    -> vectors
  - <dir>/<partition>/records.json   -> ids + metadata
"""
from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass, field
from pathlib import Path

import faiss
import numpy as np
import orjson
from loguru import logger

from docqa.errors import IndexFailure
from docqa.schemas import DocumentIdentity, IndexRecord, QueryFilter, QueryMatch

MANIFEST_NAME = "index_manifest.json"


def _partition_dirname(epic_id: str, doc_id: str) -> str:
    digest = hashlib.sha1(f"{epic_id}\x00{doc_id}".encode("utf-8")).hexdigest()
    return f"p_{digest[:16]}"


@dataclass
class _Partition:
    dimensions: int
    index: faiss.IndexFlatIP = field(init=False)
    ids: list[str] = field(default_factory=list)
    metadata: list[dict] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.index = faiss.IndexFlatIP(self.dimensions)

    @property
    def size(self) -> int:
        return self.index.ntotal

    def vectors(self) -> np.ndarray:
        if self.size == 0:
            return np.empty((0, self.dimensions), dtype=np.float32)
        return self.index.reconstruct_n(0, self.size)

    def rebuild(self, vectors: np.ndarray) -> None:
        self.index = faiss.IndexFlatIP(self.dimensions)
        if len(vectors):
            self.index.add(np.ascontiguousarray(vectors, dtype=np.float32))


class FAISSVectorIndex:
    """
    In-process vector index with filtered query and upsert.

    Create empty with ``FAISSVectorIndex(dimensions)``, or bind to a directory
    with ``FAISSVectorIndex.open(path)`` so every upsert is persisted.
    """

    def __init__(self, dimensions: int = 1536, path: Path | None = None) -> None:
        self.dimensions = dimensions
        self.path = Path(path) if path is not None else None
        self._partitions: dict[tuple[str, str], _Partition] = {}
        self._write_lock = asyncio.Lock()

    # --- Write ----------------------------------------------------------------

    async def upsert(self, records: list[IndexRecord]) -> int:
        """
        Insert records, replacing any with the same record_id in the same
        partition.  Returns the number of records written.
        """
        if not records:
            return 0

        grouped: dict[tuple[str, str], list[IndexRecord]] = {}
        for record in records:
            epic_id = record.metadata.get("epicId")
            doc_id = record.metadata.get("docId")
            if not epic_id or not doc_id:
                raise IndexFailure(
                    f"Record {record.record_id} lacks epicId/docId metadata and would be unreachable"
                )
            if len(record.vector) != self.dimensions:
                raise IndexFailure(
                    f"Record {record.record_id} has {len(record.vector)} dims, "
                    f"index expects {self.dimensions}"
                )
            grouped.setdefault((epic_id, doc_id), []).append(record)

        async with self._write_lock:
            for key, batch in grouped.items():
                self._write_partition(key, batch)
            if self.path is not None:
                # Only touched partitions are rewritten, off the event loop.
                await asyncio.to_thread(self._persist, self.path, list(grouped))

        logger.info(
            f"[FAISSIndex] Upserted {len(records)} record(s) into "
            f"{len(grouped)} partition(s)"
        )
        return len(records)

    def _write_partition(self, key: tuple[str, str], batch: list[IndexRecord]) -> None:
        partition = self._partitions.setdefault(key, _Partition(self.dimensions))
        new_vectors = np.array([r.vector for r in batch], dtype=np.float32)

        position = {rid: i for i, rid in enumerate(partition.ids)}
        if not any(r.record_id in position for r in batch):
            partition.index.add(new_vectors)
            partition.ids.extend(r.record_id for r in batch)
            partition.metadata.extend(dict(r.metadata) for r in batch)
            return

        # Replacement: IndexFlatIP cannot overwrite rows, so rebuild the partition.
        vectors = list(partition.vectors())
        for record, vector in zip(batch, new_vectors):
            if record.record_id in position:
                row = position[record.record_id]
                vectors[row] = vector
                partition.metadata[row] = dict(record.metadata)
            else:
                position[record.record_id] = len(partition.ids)
                vectors.append(vector)
                partition.ids.append(record.record_id)
                partition.metadata.append(dict(record.metadata))
        partition.rebuild(np.array(vectors, dtype=np.float32))

    # --- Search ---------------------------------------------------------------

    async def query(
        self,
        vector: np.ndarray | list[float],
        filter: QueryFilter,
        top_k: int,
        include_metadata: bool = True,
    ) -> list[QueryMatch]:
        """
        Filter-scoped nearest-neighbour search.

        Returns: up to top_k QueryMatch objects sorted by score descending.
        """
        if top_k <= 0:
            raise IndexFailure(f"top_k must be positive, got {top_k}")

        qv = np.ascontiguousarray(np.asarray(vector, dtype=np.float32).reshape(1, -1))
        if qv.shape[1] != self.dimensions:
            raise IndexFailure(
                f"Query vector has {qv.shape[1]} dims, index expects {self.dimensions}"
            )

        identity = filter.identity
        partition = self._partitions.get((identity.epic_id, identity.doc_id))
        if partition is None or partition.size == 0:
            return []

        k = min(top_k, partition.size)
        scores, rows = partition.index.search(qv, k)
        matches = []
        for score, row in zip(scores[0], rows[0]):
            if row < 0:
                continue
            metadata = dict(partition.metadata[row]) if include_metadata else {}
            matches.append(QueryMatch(id=partition.ids[row], score=float(score), metadata=metadata))
        return matches

    # --- Introspection --------------------------------------------------------

    def partitions(self) -> list[dict]:
        """List every partition with its record count."""
        return [
            {"epicId": epic_id, "docId": doc_id, "vectors": p.size}
            for (epic_id, doc_id), p in sorted(self._partitions.items())
        ]

    def count(self, identity: DocumentIdentity) -> int:
        partition = self._partitions.get((identity.epic_id, identity.doc_id))
        return partition.size if partition else 0

    @property
    def total_vectors(self) -> int:
        return sum(p.size for p in self._partitions.values())

    # --- Persistence ----------------------------------------------------------

    def save(self, index_dir: Path) -> None:
        """Persist every partition plus a manifest."""
        self._persist(Path(index_dir), list(self._partitions))

    def _persist(self, index_dir: Path, keys: list[tuple[str, str]]) -> None:
        """Write the given partitions and refresh the manifest."""
        index_dir.mkdir(parents=True, exist_ok=True)
        for key in keys:
            self._save_partition(index_dir, key)

        listing = [
            {
                "epicId": epic_id,
                "docId": doc_id,
                "dir": _partition_dirname(epic_id, doc_id),
                "vectors": partition.size,
            }
            for (epic_id, doc_id), partition in self._partitions.items()
        ]
        manifest = {
            "dimensions": self.dimensions,
            "total_vectors": self.total_vectors,
            "partitions": listing,
        }
        (index_dir / MANIFEST_NAME).write_bytes(orjson.dumps(manifest, option=orjson.OPT_INDENT_2))
        logger.debug(f"[FAISSIndex] Saved {len(keys)}/{len(listing)} partition(s) -> {index_dir}")

    def _save_partition(self, index_dir: Path, key: tuple[str, str]) -> None:
        partition = self._partitions[key]
        part_dir = index_dir / _partition_dirname(*key)
        part_dir.mkdir(exist_ok=True)
        faiss.write_index(partition.index, str(part_dir / "faiss.index"))
        (part_dir / "records.json").write_bytes(
            orjson.dumps({"ids": partition.ids, "metadata": partition.metadata})
        )

    @classmethod
    def load(cls, index_dir: Path) -> "FAISSVectorIndex":
        """Load a persisted index from disk."""
        index_dir = Path(index_dir)
        manifest = orjson.loads((index_dir / MANIFEST_NAME).read_bytes())
        instance = cls(dimensions=manifest["dimensions"])

        for entry in manifest["partitions"]:
            part_dir = index_dir / entry["dir"]
            partition = _Partition(instance.dimensions)
            partition.index = faiss.read_index(str(part_dir / "faiss.index"))
            records = orjson.loads((part_dir / "records.json").read_bytes())
            partition.ids = records["ids"]
            partition.metadata = records["metadata"]
            instance._partitions[(entry["epicId"], entry["docId"])] = partition

        logger.info(
            f"[FAISSIndex] Loaded: {instance.total_vectors} vectors in "
            f"{len(instance._partitions)} partition(s)"
        )
        return instance

    @classmethod
    def open(cls, index_dir: Path, dimensions: int = 1536) -> "FAISSVectorIndex":
        """Load the index at *index_dir* if one exists, else start empty; bind it there."""
        index_dir = Path(index_dir)
        if (index_dir / MANIFEST_NAME).exists():
            instance = cls.load(index_dir)
            if instance.dimensions != dimensions:
                raise IndexFailure(
                    f"Index at {index_dir} has {instance.dimensions} dims, "
                    f"embedder produces {dimensions}"
                )
        else:
            instance = cls(dimensions=dimensions)
        instance.path = index_dir
        return instance

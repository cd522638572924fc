import argparse
import logging
import pathlib
from dataclasses import dataclass

from .chunker import chunk_text
from .datasets import DatasetStore
from .db import Database
from .identifiers import DatasetName
from .llm import build_embedder
from .settings import settings

logger = logging.getLogger(__name__)

TEXT_EXT = {".txt", ".md"}


@dataclass
class ImportResult:
    dataset: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    duplicates: int = 0


# Read a text file; anything that is not .txt/.md gives ""
# input: Path("notes.md") -> "file content..."
# input: Path("image.png") -> ""
def _read_file(path: pathlib.Path) -> str:
    if path.suffix.lower() in TEXT_EXT:
        return path.read_text(encoding="utf-8", errors="ignore")
    return ""


def import_text(store: DatasetStore, embedder, dataset: DatasetName, content: str,
                chunk_size: int) -> ImportResult:
    """
    Chunk, embed and store content into an existing dataset table.

    A chunk that fails to embed or store is logged and counted; the rest of
    the batch keeps going.
    """
    chunks = chunk_text(content, chunk_size)
    logger.info("Content of %d chars chunked into %d pieces for dataset %s.",
                len(content), len(chunks), dataset)

    result = ImportResult(dataset=str(dataset), total=len(chunks))
    for i, chunk in enumerate(chunks):
        try:
            embedding = embedder.embed(chunk)
            if not store.store_chunk(dataset, chunk, embedding):
                result.duplicates += 1
            result.succeeded += 1
        except Exception:
            logger.exception("Failed to process or store chunk %d for dataset %s", i + 1, dataset)
            result.failed += 1

    logger.info("Finished processing for dataset %s. Stored: %d, Failed: %d",
                dataset, result.succeeded, result.failed)
    return result


def ingest_dir(root: str, dataset: str, chunk_size: int) -> ImportResult:
    name = DatasetName(dataset)
    root_path = pathlib.Path(root)
    paths = sorted(p for p in root_path.rglob("*") if p.suffix.lower() in TEXT_EXT)
    print(f"Found {len(paths)} files under {root}")

    db = Database(settings.dsn, settings.pg_pool_min_size, settings.pg_pool_max_size)
    db.open()
    try:
        db.ensure_app_schema()
        store = DatasetStore(db, settings.embedding_dimensions)
        store.ensure_dataset(name)
        embedder = build_embedder(settings)

        total = ImportResult(dataset=str(name))
        for path in paths:
            text = _read_file(path)
            if not text.strip():
                print(f"Skip empty: {path}")
                continue
            res = import_text(store, embedder, name, text, chunk_size)
            print(f"{path}: stored {res.succeeded}, failed {res.failed}")
            total.total += res.total
            total.succeeded += res.succeeded
            total.failed += res.failed
            total.duplicates += res.duplicates
    finally:
        db.close()

    print(f"Ingestion complete. Stored: {total.succeeded}, Failed: {total.failed}, "
          f"Already present: {total.duplicates}")
    return total


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("root", help="Directory containing TXT/MD files")
    parser.add_argument("--dataset", required=True, help="Dataset (table) name")
    parser.add_argument("--chunk", type=int, default=settings.chunk_size)
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level)
    ingest_dir(args.root, args.dataset, args.chunk)

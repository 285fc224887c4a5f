"""Ingest course material into the vector collection.

Walks a directory of Markdown / PDF / HTML / text files, chunks them, embeds
the chunks and upserts them into the configured collection.

Usage:
    python scripts/ingest_documents.py kb/                  # Ingest kb/ recursively
    python scripts/ingest_documents.py kb/ --no-recursive   # Top level only
    python scripts/ingest_documents.py --info               # Show collection stats
    python scripts/ingest_documents.py --reset kb/          # Drop collection, then ingest
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import get_settings
from errors import IngestionError
from services.container import build_rag_engine
from services.vector_store import create_vector_store

logger = logging.getLogger("ingest_documents")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest course material into the knowledge base")
    parser.add_argument("directory", nargs="?", default="kb", help="root directory (default: kb)")
    parser.add_argument("--no-recursive", action="store_true", help="do not descend into sub-directories")
    parser.add_argument("--info", action="store_true", help="print collection info and exit")
    parser.add_argument("--reset", action="store_true", help="delete the collection before ingesting")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = create_vector_store(settings.vector_store_type, settings.pg_uri)
    await store.initialize()
    engine = build_rag_engine(settings, store)

    try:
        if args.info:
            info = await engine.collection_info()
            if info is None:
                print(f"Collection {engine.collection_name} does not exist")
            else:
                print(
                    f"{info.name}: {info.points_count} points, "
                    f"dim={info.dimension}, distance={info.distance}"
                )
            return 0

        if args.reset:
            await engine.delete_collection()

        try:
            result = await engine.upsert_from_directory(
                args.directory, recursive=not args.no_recursive,
            )
        except IngestionError as exc:
            logger.error("Document ingestion failed: %s", exc)
            print(f"Error ingesting documents: {exc}")
            return 1

        print(f"Successfully ingested {result['count']} documents into {engine.collection_name}.")
        return 0
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = _parse_args(argv)
    if get_settings().vector_store_type == "memory" and not args.info:
        logger.warning("VECTOR_STORE_TYPE=memory: ingested vectors are lost when this script exits")
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())

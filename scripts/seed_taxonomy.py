import argparse
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from semantic_taxonomy.db import AsyncSessionLocal, InMemoryHierarchyStore, PgHierarchyStore
from semantic_taxonomy.embeddings.embedder import Embedder
from semantic_taxonomy.taxonomy.seeder import TaxonomySeeder


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Seed +/-/-- taxonomy lines from a text file."
    )
    parser.add_argument("file", help="Seed text, one entry per line")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--parent-id", help="Existing topic to seed under")
    target.add_argument("--root", help="Create (or refresh) this level-1 topic and seed under it")
    parser.add_argument("--boost", help="Boost text for --root")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Seed into an in-memory tree instead of the database (still calls the embedding API)",
    )
    return parser.parse_args(argv)


async def run(args, store):
    seeder = TaxonomySeeder(store, Embedder())

    parent_id = args.parent_id
    if args.root:
        print(f"Creating root {args.root!r}...")
        root = await seeder.seed_root(args.root, args.boost)
        print(f"Root ready: {root.slug} ({root.id})")
        parent_id = root.id

    with open(args.file, encoding="utf-8") as fh:
        text = fh.read()

    lines = [line for line in text.splitlines() if line.strip()]
    print(f"Seeding {len(lines)} line(s) under {parent_id} (this may take time)...")

    result = await seeder.seed(parent_id, text)

    print(f"Created {result.created} node(s).")
    for error in result.errors:
        print(f"  ! {error}")
    return 0 if result.success else 1


async def main(argv=None):
    args = parse_args(argv)

    if args.dry_run:
        return await run(args, InMemoryHierarchyStore())

    async with AsyncSessionLocal() as session:
        return await run(args, PgHierarchyStore(session))


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

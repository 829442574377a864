#!/usr/bin/env python3
"""
Manual test script for Gemini embedding API connectivity.

Usage:
    cd tests/scripts
    python manual_test_embed.py "Indian Polity"
"""
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "..", "src"))

# Must load dotenv before importing settings
from dotenv import load_dotenv  # noqa: E402
load_dotenv()

from semantic_taxonomy.config import settings  # noqa: E402
from semantic_taxonomy.core.vector_math import cosine_similarity  # noqa: E402
from semantic_taxonomy.embeddings.embedder import Embedder, TaskType  # noqa: E402


async def test_embed(text: str):
    api_key = settings.gemini_api_key.get_secret_value()
    print(f"Model: {settings.embedding_model}")
    print(f"API Key: {api_key[:5]}...{api_key[-3:]}")

    embedder = Embedder()
    document = await embedder.embed(text, task_type=TaskType.DOCUMENT)
    query = await embedder.embed(text, task_type=TaskType.QUERY)

    print(f"Dimension: {len(document)}")
    print(f"First values: {document[:5]}")
    print(f"Document/query similarity: {cosine_similarity(document, query):.4f}")


if __name__ == "__main__":
    asyncio.run(test_embed(sys.argv[1] if len(sys.argv) > 1 else "Hello world"))

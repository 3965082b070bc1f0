#!/usr/bin/env python3
"""Example: Storage Backends

Runs the same conversation through the in-memory and SQLite storage
collaborators and shows that a second weaver can pick up a session
persisted in SQLite.

Usage:
    python examples/02_storage_backends.py

Requirements:
    pip install 'context-weaver[sqlite]'
"""
from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import context_weaver
from context_weaver import AsyncStorageAdapter, InMemoryStorage, SmartContextWeaver, SQLiteStorage


async def demo_storage(label: str, storage: AsyncStorageAdapter) -> None:
    weaver = SmartContextWeaver(storage=storage)
    await weaver.add("s-001", "user", "Please always answer in French.")
    await weaver.add("s-001", "assistant", "Bien sûr.")
    result = await weaver.get_context("s-001")
    print(f"  [{label}] stored {len(await weaver.get_messages('s-001'))} messages, "
          f"context has {result.message_count}")


async def main() -> None:
    print(f"context-weaver version: {context_weaver.__version__}")

    print("\nIn-memory storage:")
    await demo_storage("memory", InMemoryStorage())

    print("\nSQLite storage:")
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "messages.db"
        await demo_storage("sqlite", SQLiteStorage(db_path))

        reopened = SmartContextWeaver(storage=SQLiteStorage(db_path))
        messages = await reopened.get_messages("s-001")
        print(f"  [sqlite] new weaver sees {len(messages)} messages; "
              f"first pinned={messages[0].pinned}")


if __name__ == "__main__":
    asyncio.run(main())

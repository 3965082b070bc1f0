#!/usr/bin/env python3
"""Example: Quickstart — context-weaver

Minimal working example: record a short conversation, then ask for the
context to send with the next turn under a small token budget.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install context-weaver
"""
from __future__ import annotations

import asyncio

import context_weaver
from context_weaver import SmartContextWeaver


async def main() -> None:
    print(f"context-weaver version: {context_weaver.__version__}")

    weaver = SmartContextWeaver(token_limit=2000)
    session = weaver.session("trip-planning")

    # Step 1: Record the conversation; importance is detected automatically
    await session.add("user", "My name is Dana and my budget is $1500.")
    await session.add("assistant", "Great, where would you like to go?")
    await session.add("user", "ok")
    await session.add("user", "Somewhere warm in March, I prefer quiet beaches.")
    await session.add("assistant", "Here are three options:\n1. Algarve\n2. Crete\n3. Madeira")

    for message in await session.messages():
        flag = "pinned" if message.pinned else "      "
        print(f"  {flag} {message.importance:.2f}  {message.role.value:9} {message.content[:40]!r}")

    # Step 2: Select context for the next turn
    result = await session.get_context(max_tokens=60, current_query="tell me about Crete")
    print(f"\nSelected {result.message_count} messages ({result.token_count}/60 tokens):")
    for message in result.messages:
        print(f"  {message.role.value}: {message.content[:60]!r}")

    stats = await session.stats()
    print(f"\nSession holds {stats.total_messages} messages, {stats.pinned_messages} pinned")


if __name__ == "__main__":
    asyncio.run(main())

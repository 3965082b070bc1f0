#!/usr/bin/env python3
"""Example: Conversation Pair Selection

Builds question/answer pairs, shows which ones carry back-references, and
selects whole pairs under a budget for a query that refers to an earlier
list ("option 2").

Usage:
    python examples/03_pair_selection.py

Requirements:
    pip install context-weaver
"""
from __future__ import annotations

from context_weaver import ConversationPairManager, Message


def main() -> None:
    messages = [
        Message(role="system", content="You are a travel assistant."),
        Message(role="user", content="What are good ways to get to Lisbon?"),
        Message(role="assistant", content="Options:\n1. Fly direct\n2. Overnight train\n3. Drive"),
        Message(role="user", content="How long does the drive take?"),
        Message(role="assistant", content="About 14 hours with stops."),
        Message(role="user", content="And what is the weather like in May?"),
        Message(role="assistant", content="Warm and mostly dry."),
        Message(role="user", content="Thanks"),
        Message(role="assistant", content="You're welcome."),
    ]

    manager = ConversationPairManager()
    pairs = manager.build_pairs(messages)
    for pair in pairs:
        refs = ", ".join(pair.referenced_pair_ids) or "-"
        print(f"  {pair.id:<24} importance={pair.importance:.2f} refs={refs} topic={pair.topic!r}")

    selected = manager.select_pairs(
        pairs, max_tokens=60, current_query="tell me more about option 2", min_recent_pairs=2
    )
    print("\nKept for 'tell me more about option 2':")
    for message in manager.pairs_to_messages(selected):
        print(f"  {message.role.value}: {message.content.splitlines()[0]}")


if __name__ == "__main__":
    main()

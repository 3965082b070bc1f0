#!/usr/bin/env python3
"""Example: Session Export and Import

Exports a session to checksummed JSON and YAML documents and loads it into
a fresh weaver under a new session id.

Usage:
    python examples/04_session_export.py

Requirements:
    pip install context-weaver
"""
from __future__ import annotations

import asyncio

from context_weaver import SessionSerializer, SmartContextWeaver, export_session, import_session


async def main() -> None:
    source = SmartContextWeaver()
    await source.add("support-42", "user", "My email is sam@example.com")
    await source.add("support-42", "assistant", "Thanks, I have opened a ticket.")

    serializer = SessionSerializer()
    export = await export_session(source, "support-42")
    raw_json = serializer.to_json(export)
    print(f"JSON document: {len(raw_json)} chars, checksum {export.checksum[:12]}...")
    print("YAML document:")
    print(serializer.to_yaml(export))

    target = SmartContextWeaver()
    restored = serializer.from_json(raw_json)
    new_id = await import_session(target, restored, session_id="support-42-copy")
    result = await target.get_context(new_id)
    print(f"Imported into {new_id!r}: {result.message_count} messages in context")


if __name__ == "__main__":
    asyncio.run(main())

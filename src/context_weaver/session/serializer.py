"""Session export and import with schema versioning.

A session (its messages and summary) is captured as a ``SessionExport``
document that embeds a schema version and a SHA-256 checksum of its
content.  Documents round-trip through JSON or YAML; batches of sessions
are written as a JSON array or as JSON Lines (one document per line).

Classes
-------
- SessionExport      — portable snapshot of one session
- SessionSerializer  — encode/decode exports as JSON, YAML, or JSONL

Functions
---------
- export_session / export_all   — snapshot sessions from a weaver
- import_session / import_sessions — load snapshots into a weaver
"""
from __future__ import annotations

import hashlib
import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Iterable, Literal

import pydantic
import yaml
from pydantic import BaseModel, Field

from context_weaver.errors import ValidationError
from context_weaver.session.state import Message, generate_id, now_ms

if TYPE_CHECKING:
    from context_weaver.session.weaver import SmartContextWeaver

logger = logging.getLogger(__name__)

_SUPPORTED_SCHEMA_VERSIONS: frozenset[str] = frozenset({"1.0"})


class SchemaVersionError(ValidationError):
    """Raised when a serialised document uses an unsupported schema version."""

    def __init__(self, version: str) -> None:
        self.version = version
        supported = ", ".join(sorted(_SUPPORTED_SCHEMA_VERSIONS))
        super().__init__(
            f"Unsupported schema version {version!r}. Supported versions: {supported}",
            {"version": version},
        )


class SessionExport(BaseModel):
    """Portable snapshot of one session.

    Parameters
    ----------
    session_id:
        Id of the exported session.
    messages:
        Messages in stored order.
    summary:
        Stored summary, if any.
    exported_at:
        Export time in epoch milliseconds.
    checksum:
        SHA-256 of the canonical JSON of every other field.
    """

    SCHEMA_VERSION: ClassVar[str] = "1.0"

    schema_version: str = "1.0"
    session_id: str
    messages: list[Message] = Field(default_factory=list)
    summary: str | None = None
    exported_at: int = Field(default_factory=now_ms)
    checksum: str = ""

    def compute_checksum(self) -> str:
        """Compute, store, and return the content checksum."""
        data = self.model_dump(mode="json")
        data.pop("checksum", None)
        canonical_json = json.dumps(data, sort_keys=True)
        self.checksum = hashlib.sha256(canonical_json.encode()).hexdigest()
        return self.checksum


class SessionSerializer:
    """Serialize and deserialize ``SessionExport`` documents.

    Parameters
    ----------
    validate_checksum:
        When True (default), loading verifies the embedded checksum and
        raises ``ValidationError`` on mismatch.
    """

    def __init__(self, validate_checksum: bool = True) -> None:
        self.validate_checksum = validate_checksum

    # ------------------------------------------------------------------
    # JSON / YAML
    # ------------------------------------------------------------------

    def to_json(self, export: SessionExport, *, indent: int | None = 2) -> str:
        """Serialise with a freshly computed checksum."""
        export.compute_checksum()
        return json.dumps(export.model_dump(mode="json"), indent=indent)

    def from_json(self, raw: str) -> SessionExport:
        """Deserialize a document produced by ``to_json``.

        Raises
        ------
        SchemaVersionError
            If ``schema_version`` is unsupported.
        ValidationError
            If the document is malformed or the checksum does not match.
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"invalid JSON: {exc}") from exc
        return self._deserialize(data)

    def to_yaml(self, export: SessionExport) -> str:
        export.compute_checksum()
        return yaml.dump(
            export.model_dump(mode="json"),
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=True,
        )

    def from_yaml(self, raw: str) -> SessionExport:
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ValidationError(f"invalid YAML: {exc}") from exc
        return self._deserialize(data)

    def serialize(self, export: SessionExport, format: Literal["json", "yaml"] = "json") -> str:
        if format == "yaml":
            return self.to_yaml(export)
        return self.to_json(export)

    def deserialize(self, raw: str, format: Literal["json", "yaml"] = "json") -> SessionExport:
        if format == "yaml":
            return self.from_yaml(raw)
        return self.from_json(raw)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def to_json_array(self, exports: Iterable[SessionExport], *, indent: int | None = 2) -> str:
        """Serialise several exports as one JSON array."""
        documents = []
        for export in exports:
            export.compute_checksum()
            documents.append(export.model_dump(mode="json"))
        return json.dumps(documents, indent=indent)

    def to_jsonl(self, exports: Iterable[SessionExport]) -> str:
        """Serialise several exports as JSON Lines."""
        return "".join(self.to_json(export, indent=None) + "\n" for export in exports)

    def load_batch(self, raw: str) -> list[SessionExport]:
        """Decode a JSON array, a single JSON document, or JSON Lines."""
        stripped = raw.strip()
        if not stripped:
            return []
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            return [self.from_json(line) for line in stripped.splitlines() if line.strip()]
        if isinstance(data, list):
            return [self._deserialize(item) for item in data]
        return [self._deserialize(data)]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _deserialize(self, data: Any) -> SessionExport:
        if not isinstance(data, dict):
            raise ValidationError("session document must be a mapping")
        version = str(data.get("schema_version", ""))
        if version not in _SUPPORTED_SCHEMA_VERSIONS:
            raise SchemaVersionError(version)

        try:
            export = SessionExport.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"malformed session document: {exc}") from exc

        if self.validate_checksum and export.checksum:
            stored = export.checksum
            computed = export.compute_checksum()
            if stored != computed:
                raise ValidationError(
                    f"Checksum mismatch for session {export.session_id!r}",
                    {"stored": stored, "computed": computed},
                )
        return export


# ---------------------------------------------------------------------------
# Weaver integration
# ---------------------------------------------------------------------------


async def export_session(weaver: SmartContextWeaver, session_id: str) -> SessionExport:
    """Snapshot ``session_id`` from ``weaver``'s storage."""
    export = SessionExport(
        session_id=session_id,
        messages=await weaver.get_messages(session_id),
        summary=await weaver.get_summary(session_id),
    )
    export.compute_checksum()
    return export


async def export_all(
    weaver: SmartContextWeaver, session_ids: Iterable[str] | None = None
) -> list[SessionExport]:
    """Snapshot several sessions; all that storage can enumerate by default."""
    ids = list(session_ids) if session_ids is not None else await weaver.storage.list_sessions()
    return [await export_session(weaver, session_id) for session_id in ids]


async def import_session(
    weaver: SmartContextWeaver,
    export: SessionExport,
    *,
    session_id: str | None = None,
    overwrite: bool = False,
    regenerate_ids: bool = False,
) -> str:
    """Load ``export`` into ``weaver`` and return the target session id.

    Parameters
    ----------
    session_id:
        Target session.  Defaults to ``export.session_id``.
    overwrite:
        Replace an existing session instead of raising.
    regenerate_ids:
        Give every imported message a fresh id.

    Raises
    ------
    ValidationError
        If the target exists and ``overwrite`` is False.
    """
    target = session_id or export.session_id
    messages = [
        m.model_copy(update={"id": generate_id()}, deep=True) if regenerate_ids else m
        for m in export.messages
    ]
    await weaver.import_session(target, messages, export.summary, overwrite=overwrite)
    logger.debug("import_session: %d messages into %r", len(messages), target)
    return target


async def import_sessions(
    weaver: SmartContextWeaver,
    exports: Iterable[SessionExport],
    *,
    overwrite: bool = False,
    regenerate_ids: bool = False,
) -> list[str]:
    """Import several exports; returns the target session ids in order."""
    return [
        await import_session(weaver, export, overwrite=overwrite, regenerate_ids=regenerate_ids)
        for export in exports
    ]


__all__ = [
    "SchemaVersionError",
    "SessionExport",
    "SessionSerializer",
    "export_all",
    "export_session",
    "import_session",
    "import_sessions",
]

"""Versioned, keyed prompt templates backed by the relational store.

Templates use ``{{name}}`` placeholders and ``{{#if name}}...{{/if}}``
conditional blocks. Every edit snapshots the previous text into
``ai_prompt_version`` so any earlier version can be restored.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime

from pydantic import BaseModel
from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Connection, Engine, RowMapping
from sqlalchemy.exc import SQLAlchemyError

from estatenews.prompts.defaults import DEFAULT_PROMPTS
from estatenews.store.models import as_utc
from estatenews.store.schema import t_ai_prompt, t_ai_prompt_version

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 300.0

_IF_BLOCK_RE = re.compile(r"\{\{#if (\w+)\}\}(.*?)\{\{/if\}\}", re.DOTALL)
_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


def render_template(template: str, variables: Mapping[str, str]) -> str:
    """Substitute variables into a prompt template.

    Conditional blocks are kept (without their tags) when the variable
    is non-empty and removed otherwise. Placeholders with no supplied
    value render as the empty string.
    """

    def _if_block(match: re.Match[str]) -> str:
        return match.group(2) if variables.get(match.group(1)) else ""

    rendered = _IF_BLOCK_RE.sub(_if_block, template)
    return _PLACEHOLDER_RE.sub(lambda m: variables.get(m.group(1)) or "", rendered)


class PromptRecord(BaseModel):
    """A stored prompt."""

    id: int
    key: str
    name: str
    description: str | None = None
    model: str | None = None
    section: str | None = None
    prompt: str
    updated_at: datetime | None = None


class PromptVersion(BaseModel):
    """A snapshot of a prompt taken before it was changed."""

    id: int
    prompt_id: int
    version_number: int
    name: str
    prompt: str
    model: str | None = None
    section: str | None = None
    description: str | None = None
    change_description: str | None = None
    created_at: datetime | None = None
    created_by: str | None = None


class PromptStore:
    """Reads and edits prompts; reads are cached for ``cache_ttl`` seconds."""

    def __init__(
        self,
        engine: Engine,
        *,
        cache_ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[str, tuple[str, float]] = {}

    # ── Private helpers ──────────────────────────────────────────

    @staticmethod
    def _to_record(row: RowMapping) -> PromptRecord:
        return PromptRecord(
            id=row["id"],
            key=row["key"],
            name=row["name"],
            description=row["description"],
            model=row["model"],
            section=row["section"],
            prompt=row["prompt"],
            updated_at=as_utc(row["updated_at"]),
        )

    @staticmethod
    def _fetch(conn: Connection, key: str) -> RowMapping | None:
        return conn.execute(select(t_ai_prompt).where(t_ai_prompt.c.key == key)).mappings().first()

    @staticmethod
    def _snapshot(
        conn: Connection,
        current: RowMapping,
        change_description: str | None,
        created_by: str | None,
    ) -> int:
        latest = conn.execute(
            select(func.max(t_ai_prompt_version.c.version_number)).where(
                t_ai_prompt_version.c.prompt_id == current["id"]
            )
        ).scalar()
        version_number = (latest or 0) + 1
        conn.execute(
            insert(t_ai_prompt_version).values(
                prompt_id=current["id"],
                name=current["name"],
                description=current["description"],
                model=current["model"],
                section=current["section"],
                prompt=current["prompt"],
                version_number=version_number,
                change_description=change_description,
                created_at=datetime.now(tz=UTC),
                created_by=created_by,
            )
        )
        return version_number

    # ── Reads ────────────────────────────────────────────────────

    def get_prompt(self, key: str) -> str | None:
        """Return the prompt text for ``key``, or None if not configured."""
        now = self._clock()
        cached = self._cache.get(key)
        if cached is not None and now - cached[1] < self.cache_ttl:
            return cached[0]

        try:
            with self.engine.connect() as conn:
                row = self._fetch(conn, key)
        except SQLAlchemyError:
            logger.warning("Could not read prompt %r from the store", key, exc_info=True)
            return None

        if row is None:
            logger.warning("Prompt %r not found in the store", key)
            return None
        self._cache[key] = (row["prompt"], now)
        return row["prompt"]

    def get_prompt_with_variables(self, key: str, variables: Mapping[str, str]) -> str | None:
        """Return the rendered prompt for ``key``, or None if not configured."""
        template = self.get_prompt(key)
        if template is None:
            return None
        return render_template(template, variables)

    def get_record(self, key: str) -> PromptRecord | None:
        with self.engine.connect() as conn:
            row = self._fetch(conn, key)
        return self._to_record(row) if row else None

    def list_prompts(self) -> list[PromptRecord]:
        stmt = select(t_ai_prompt).order_by(t_ai_prompt.c.section, t_ai_prompt.c.key)
        with self.engine.connect() as conn:
            return [self._to_record(row) for row in conn.execute(stmt).mappings()]

    def list_versions(self, key: str) -> list[PromptVersion]:
        """Return the saved versions of a prompt, newest first.

        Raises:
            LookupError: If no prompt has this key.
        """
        with self.engine.connect() as conn:
            current = self._fetch(conn, key)
            if current is None:
                raise LookupError(f"Unknown prompt key: {key!r}")
            rows = conn.execute(
                select(t_ai_prompt_version)
                .where(t_ai_prompt_version.c.prompt_id == current["id"])
                .order_by(t_ai_prompt_version.c.version_number.desc())
            ).mappings()
            return [
                PromptVersion(
                    id=row["id"],
                    prompt_id=row["prompt_id"],
                    version_number=row["version_number"],
                    name=row["name"],
                    prompt=row["prompt"],
                    model=row["model"],
                    section=row["section"],
                    description=row["description"],
                    change_description=row["change_description"],
                    created_at=as_utc(row["created_at"]),
                    created_by=row["created_by"],
                )
                for row in rows
            ]

    # ── Writes ───────────────────────────────────────────────────

    def set_prompt(
        self,
        key: str,
        prompt: str,
        *,
        name: str | None = None,
        description: str | None = None,
        model: str | None = None,
        section: str | None = None,
        change_description: str | None = None,
        created_by: str | None = None,
    ) -> PromptRecord:
        """Create or update a prompt, snapshotting the previous text first."""
        now = datetime.now(tz=UTC)
        with self.engine.begin() as conn:
            current = self._fetch(conn, key)
            if current is None:
                default = DEFAULT_PROMPTS.get(key)
                values: dict[str, object] = {"name": key, "description": None, "model": None, "section": None}
                if default is not None:
                    values.update(default.model_dump(exclude={"key", "prompt"}))
                for field, value in (
                    ("name", name),
                    ("description", description),
                    ("model", model),
                    ("section", section),
                ):
                    if value is not None:
                        values[field] = value
                conn.execute(
                    insert(t_ai_prompt).values(key=key, prompt=prompt, created_at=now, updated_at=now, **values)
                )
            else:
                version = self._snapshot(conn, current, change_description, created_by)
                logger.info("Saved version %d of prompt %r", version, key)
                values = {"prompt": prompt, "updated_at": now}
                for field, value in (
                    ("name", name),
                    ("description", description),
                    ("model", model),
                    ("section", section),
                ):
                    if value is not None:
                        values[field] = value
                conn.execute(update(t_ai_prompt).where(t_ai_prompt.c.id == current["id"]).values(**values))
            row = self._fetch(conn, key)

        self._cache.pop(key, None)
        assert row is not None
        return self._to_record(row)

    def restore_version(self, key: str, version_id: int, *, created_by: str | None = None) -> PromptRecord:
        """Make a saved version current again.

        The text being replaced is itself snapshotted, so a restore can
        be undone.

        Raises:
            LookupError: If the prompt or the version does not exist.
        """
        with self.engine.connect() as conn:
            current = self._fetch(conn, key)
            if current is None:
                raise LookupError(f"Unknown prompt key: {key!r}")
            version = (
                conn.execute(
                    select(t_ai_prompt_version)
                    .where(t_ai_prompt_version.c.id == version_id)
                    .where(t_ai_prompt_version.c.prompt_id == current["id"])
                )
                .mappings()
                .first()
            )
        if version is None:
            raise LookupError(f"Prompt {key!r} has no version {version_id}")

        return self.set_prompt(
            key,
            version["prompt"],
            name=version["name"],
            description=version["description"],
            model=version["model"],
            section=version["section"],
            change_description=f"Restored from version {version['version_number']}",
            created_by=created_by,
        )

    def seed_defaults(self) -> int:
        """Insert the built-in prompts for keys not yet in the store.

        Returns:
            Number of prompts inserted.
        """
        inserted = 0
        now = datetime.now(tz=UTC)
        with self.engine.begin() as conn:
            for definition in DEFAULT_PROMPTS.values():
                if self._fetch(conn, definition.key) is not None:
                    continue
                conn.execute(insert(t_ai_prompt).values(**definition.model_dump(), created_at=now, updated_at=now))
                inserted += 1
        logger.info("Seeded %d default prompts", inserted)
        return inserted

    def clear_cache(self) -> None:
        self._cache.clear()


def resolve_prompt(store: PromptStore | None, key: str, variables: Mapping[str, str]) -> str:
    """Render ``key`` from the store, falling back to the built-in default.

    Raises:
        KeyError: If ``key`` has neither stored text nor a built-in default.
    """
    if store is not None:
        rendered = store.get_prompt_with_variables(key, variables)
        if rendered is not None:
            return rendered
    logger.warning("Using built-in default prompt for %r", key)
    return render_template(DEFAULT_PROMPTS[key].prompt, variables)

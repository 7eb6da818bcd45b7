"""Subscriber preferences (read-only) and the append-only email log."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, insert, select
from sqlalchemy.engine import Engine

from estatenews.store.models import EmailFrequency, EmailType, Subscriber
from estatenews.store.schema import (
    t_email_log,
    t_user,
    t_user_preference_category,
    t_user_preferences,
)

logger = logging.getLogger(__name__)


class SubscriberStore:
    """Reads subscriber preferences and records sent email."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def list_subscribers(self, frequency: EmailFrequency) -> list[Subscriber]:
        """Return every user whose email frequency is ``frequency``.

        Each subscriber carries their explicit category-id set, which is
        only meaningful when ``all_categories`` is false.
        """
        users_stmt = (
            select(
                t_user.c.id,
                t_user.c.email,
                t_user.c.name,
                t_user_preferences.c.email_frequency,
                t_user_preferences.c.all_categories,
            )
            .join(t_user_preferences, t_user_preferences.c.user_id == t_user.c.id)
            .where(t_user_preferences.c.email_frequency == frequency.value)
            .order_by(t_user.c.id)
        )
        with self.engine.connect() as conn:
            users = conn.execute(users_stmt).mappings().all()
            ids = [row["id"] for row in users]
            categories: dict[int, set[int]] = {user_id: set() for user_id in ids}
            if ids:
                cat_stmt = select(
                    t_user_preference_category.c.user_id,
                    t_user_preference_category.c.category_id,
                ).where(t_user_preference_category.c.user_id.in_(ids))
                for user_id, category_id in conn.execute(cat_stmt):
                    categories[user_id].add(category_id)

        return [
            Subscriber(
                user_id=row["id"],
                email=row["email"],
                name=row["name"],
                email_frequency=EmailFrequency(row["email_frequency"]),
                all_categories=bool(row["all_categories"]),
                category_ids=categories[row["id"]],
            )
            for row in users
        ]

    def count_sent_since(self, user_id: int, since: datetime) -> int:
        """Count email log rows for a user with ``sent_at >= since``."""
        stmt = (
            select(func.count())
            .select_from(t_email_log)
            .where(t_email_log.c.user_id == user_id)
            .where(t_email_log.c.sent_at >= since)
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar_one()

    def log_email(
        self,
        user_id: int,
        email_type: EmailType,
        sent_at: datetime,
        article_id: int | None = None,
    ) -> None:
        """Append one email log row for a successful send."""
        with self.engine.begin() as conn:
            conn.execute(
                insert(t_email_log).values(
                    user_id=user_id,
                    email_type=email_type.value,
                    article_id=article_id,
                    sent_at=sent_at,
                    status="sent",
                )
            )
        logger.debug("Logged %s email for user %d", email_type.value, user_id)

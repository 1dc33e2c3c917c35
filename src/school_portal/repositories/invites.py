"""Invite repository.

Invites move ``pending -> accepted | cancelled | expired``. Every transition
is a single conditional UPDATE on ``status = 'pending'``, so concurrent
callers cannot both win: the loser sees zero rows and gets
``AlreadyProcessedError`` (or ``NotFoundError`` for an unknown id).
"""

import sqlite3
from datetime import timedelta
from typing import Any, List, Optional, Sequence

from school_portal.config import Settings
from school_portal.database import Database, Invite
from school_portal.database.sqlutils import NOW_SQL, FilterBuilder, format_timestamp, new_id, now_timestamp, utcnow
from school_portal.errors import (
    AlreadyProcessedError,
    DeliveryError,
    InvalidTokenError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from school_portal.logutils import with_context
from school_portal.mailer import EmailService
from school_portal.tokens import create_invite_token, decode_invite_token
from school_portal.validation import InviteCreate, InviteFilter, InviteResend, validate

from .base import ReadRepository, logger

EXPIRY_PROCEDURE = "expire_stale_invites"


class InviteRepository(ReadRepository[Invite]):
    table = "invites"
    entity = "invite"
    model = Invite
    filter_schema = InviteFilter
    order_by = "invites.created_at DESC"

    def __init__(self, db: Database, settings: Optional[Settings] = None, email: Optional[EmailService] = None):
        super().__init__(db)
        self.settings = settings or Settings()
        self.email = email or EmailService(self.settings)

    def _apply_filters(self, where: FilterBuilder, params: InviteFilter) -> None:
        where.equals("invites.email", params.email)
        where.equals("invites.role", params.role)
        where.equals("invites.status", params.status)

    # ==================== RULES ====================

    def check_email_domain(self, email: str, role: str) -> None:
        """Teachers must be invited on one of the allowed school domains."""
        allowed = self.settings.invite_allowed_domains
        if role != "teacher" or not allowed:
            return
        domain = email.rsplit("@", 1)[-1].lower()
        if domain not in allowed:
            raise ValidationError.single(
                "email",
                f"Teachers must use an email from: {', '.join(allowed)}",
                code="INVALID_EMAIL_DOMAIN",
            )

    def _check_rate(self, conn: sqlite3.Connection, email: str) -> None:
        recent = self._count(
            conn,
            "SELECT COUNT(*) FROM invites WHERE email = ? "
            "AND created_at > strftime('%Y-%m-%d %H:%M:%f', 'now', '-1 day')",
            email,
        )
        if recent >= self.settings.invite_daily_limit:
            raise RateLimitError(
                "Too many invite attempts. Please try again later.",
                details={"email": email, "limit": self.settings.invite_daily_limit},
            )

    def _insert(self, conn: sqlite3.Connection, email: str, role: str, invited_by: str) -> Invite:
        """Insert a pending invite with a fresh token."""
        invite_id = new_id()
        expires_at = utcnow() + timedelta(days=self.settings.invite_ttl_days)
        token = create_invite_token(invite_id, email, role, expires_at, self.settings.invite_secret)
        now = now_timestamp()
        conn.execute(
            """
            INSERT INTO invites (id, email, role, status, invited_by, token, expires_at, created_at, updated_at)
            VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?)
            """,
            (invite_id, email, role, invited_by, token, format_timestamp(expires_at), now, now),
        )
        return self._to_model(self._require(conn, invite_id))

    def _deliver(self, invite: Invite, superseded: Sequence[str] = ()) -> None:
        """Send the invite email once the insert is committed.

        On delivery failure the new invite is deleted and the ``superseded``
        invites it replaced are made pending again.
        """
        try:
            self.email.send_invite(invite)
        except DeliveryError:
            with self.db.transaction() as conn:
                conn.execute("DELETE FROM invites WHERE id = ?", (invite.id,))
                if superseded:
                    placeholders = ", ".join("?" for _ in superseded)
                    conn.execute(
                        f"UPDATE invites SET status = 'pending', updated_at = ? "
                        f"WHERE id IN ({placeholders}) AND status = 'expired'",
                        (now_timestamp(), *superseded),
                    )
            logger.warning(
                "Invite withdrawn after failed delivery",
                extra={"extra_data": {"invite_id": invite.id, "restored": len(superseded)}},
            )
            raise

    # ==================== OPERATIONS ====================

    def create(self, data: Any) -> Invite:
        schema = validate(InviteCreate, data)
        self.check_email_domain(schema.email, schema.role)

        with with_context(operation="invite.create", entity=self.entity):
            with self._store_errors("create"):
                with self.db.transaction() as conn:
                    self._check_rate(conn, schema.email)
                    invite = self._insert(conn, schema.email, schema.role, schema.invited_by)
                self._deliver(invite)
            self._log_write("created", invite.id, role=invite.role, email=invite.email)

        return invite

    def resend(self, email: str, invited_by: str) -> Invite:
        """Expire pending invites for ``email`` and issue a new one with the latest role."""
        schema = validate(InviteResend, {"email": email, "invited_by": invited_by})

        with with_context(operation="invite.resend", entity=self.entity):
            with self._store_errors("create"):
                with self.db.transaction() as conn:
                    latest = conn.execute(
                        "SELECT role FROM invites WHERE email = ? ORDER BY created_at DESC, id LIMIT 1",
                        (schema.email,),
                    ).fetchone()
                    if latest is None:
                        raise NotFoundError(self.entity, schema.email)
                    self._check_rate(conn, schema.email)
                    superseded = [
                        row["id"]
                        for row in conn.execute(
                            "UPDATE invites SET status = 'expired', updated_at = ? "
                            "WHERE email = ? AND status = 'pending' RETURNING id",
                            (now_timestamp(), schema.email),
                        ).fetchall()
                    ]
                    invite = self._insert(conn, schema.email, latest["role"], schema.invited_by)
                self._deliver(invite, superseded)
            self._log_write("resent", invite.id, email=invite.email)

        return invite

    def _transition(self, invite_id: str, target: str, user_id: Optional[str] = None) -> Invite:
        extra = (", accepted_at = " + NOW_SQL + ", accepted_by = ?") if target == "accepted" else ""
        params: List[Any] = [target]
        if target == "accepted":
            params.append(user_id)
        params.append(invite_id)

        with with_context(operation=f"invite.{target}", entity=self.entity, entity_id=invite_id, user_id=user_id):
            with self._store_errors("update"):
                with self.db.transaction() as conn:
                    rows = conn.execute(
                        f"""
                        UPDATE invites
                        SET status = ?, updated_at = {NOW_SQL}{extra}
                        WHERE id = ? AND status = 'pending' AND expires_at > {NOW_SQL}
                        RETURNING *
                        """,
                        params,
                    ).fetchall()
                    if not rows:
                        current = self._fetch(conn, invite_id)
                        if current is None:
                            raise NotFoundError(self.entity, invite_id)
                        status = current["status"]
                        if status == "pending":
                            status = "expired"
                        raise AlreadyProcessedError(
                            f"Invite is already {status}: {invite_id}",
                            code=f"INVITE_{status.upper()}",
                            details={"status": status},
                        )
            self._log_write(target, invite_id)

        return self._to_model(rows[0])

    def accept(self, invite_id: str, user_id: str) -> Invite:
        """Accept a pending, unexpired invite on behalf of ``user_id``."""
        return self._transition(invite_id, "accepted", user_id)

    def accept_token(self, token: str, user_id: str) -> Invite:
        """Accept the invite a signup token refers to.

        Only the newest token issued for an invite is honoured.
        """
        claims = decode_invite_token(token, self.settings.invite_secret)
        invite = self.get_by_id(claims["sub"])
        if invite.token != token:
            raise InvalidTokenError("Invite token has been superseded")
        return self.accept(invite.id, user_id)

    def cancel(self, invite_id: str) -> Invite:
        return self._transition(invite_id, "cancelled")

    def is_valid(self, invite_id: str) -> bool:
        with self._store_errors("read"):
            with self.db.connection() as conn:
                row = conn.execute(
                    f"SELECT 1 FROM invites WHERE id = ? AND status = 'pending' AND expires_at > {NOW_SQL}",
                    (invite_id,),
                ).fetchone()
        return row is not None

    def get_history(self, email: str) -> List[Invite]:
        return self.list_where("email", email.strip().lower())

    def expire_stale(self) -> int:
        count = self.db.call_procedure(EXPIRY_PROCEDURE)
        logger.info("Expired stale invites", extra={"extra_data": {"count": count}})
        return count

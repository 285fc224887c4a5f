"""Misuse reports: students flag suspicious conversations, admins triage them.

Each report is a JSON document under its own key; a capped list keeps the
report ids newest-first.  Status updates rewrite only the report key, so they
never race with new submissions.  Admin notification is best-effort: a report
is recorded even if no email goes out.
"""

from __future__ import annotations

import html
import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from errors import ReportNotFound
from models.conversation import Turn, normalize_history
from models.feedback import FeedbackReport, FeedbackSubmitted, Priority, ReportStats, ReportStatus
from services.credential_store import CredentialStore
from services.email_service import EmailService
from services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

REPORTS_KEY = "feedback_reports"
REPORT_KEY_PREFIX = "feedback_report:"
EXCERPT_TURNS = 10
RECENT_DAYS = 7

HIGH_PRIORITY_CATEGORIES = frozenset({
    "jailbreak_attempt",
    "prompt_injection",
    "inappropriate_content_generation",
    "system_manipulation",
})
MEDIUM_PRIORITY_CATEGORIES = frozenset({
    "answer_seeking",
    "hint_solicitation",
    "academic_dishonesty",
})


def determine_priority(category: str) -> Priority:
    if category in HIGH_PRIORITY_CATEGORIES:
        return Priority.HIGH
    if category in MEDIUM_PRIORITY_CATEGORIES:
        return Priority.MEDIUM
    return Priority.LOW


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _report_key(report_id: str) -> str:
    return f"{REPORT_KEY_PREFIX}{report_id}"


def render_report_email(report: FeedbackReport) -> str:
    """HTML body of the admin notification."""
    if report.conversation_excerpt:
        turns = "\n".join(
            "<div><strong>{label} (message {n})</strong><br>{text}</div>".format(
                label="Student" if turn.role == "user" else "Bot",
                n=i,
                text=html.escape(turn.text).replace("\n", "<br>"),
            )
            for i, turn in enumerate(report.conversation_excerpt, start=1)
        )
    else:
        turns = "<p><em>No conversation history available.</em></p>"

    return (
        "<h2>ICS TA Bot misuse report</h2>"
        "<table>"
        f"<tr><td>Report ID</td><td>{html.escape(report.id)}</td></tr>"
        f"<tr><td>Student</td><td>{html.escape(report.email)}</td></tr>"
        f"<tr><td>Category</td><td>{html.escape(report.category)}</td></tr>"
        f"<tr><td>Priority</td><td>{report.priority.value.upper()}</td></tr>"
        f"<tr><td>Submitted</td><td>{report.timestamp}</td></tr>"
        "</table>"
        f"<h3>Description</h3><p>{html.escape(report.description)}</p>"
        f"<h3>Conversation</h3>{turns}"
    )


class FeedbackService:
    def __init__(
        self,
        kv: KeyValueStore,
        credentials: CredentialStore,
        email_service: EmailService | None = None,
        max_reports: int = 1000,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._kv = kv
        self._credentials = credentials
        self._email = email_service
        self._max_reports = max_reports
        self._now = now

    # ── Submission ───────────────────────────────────────────

    async def submit_feedback(
        self,
        identity: str,
        category: str,
        description: str,
        history: Any = None,
    ) -> FeedbackSubmitted:
        """Record a report and notify admins.

        Raises:
            ValueError: identity, category or description is empty.
        """
        if not (identity and category and category.strip() and description and description.strip()):
            raise ValueError("User email, category, and description are required")

        excerpt: list[Turn] = normalize_history(history)[-EXCERPT_TURNS:]
        now = self._now()
        report = FeedbackReport(
            id=f"report_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
            timestamp=now.isoformat(),
            email=identity,
            category=category.strip(),
            description=description.strip(),
            conversation_excerpt=excerpt,
            priority=determine_priority(category.strip()),
        )
        await self._kv.set(_report_key(report.id), report.model_dump_json())
        evicted = await self._kv.lpush_capped(REPORTS_KEY, report.id, self._max_reports)
        for old_id in evicted:
            await self._kv.delete(_report_key(old_id))
        logger.info(
            "Feedback report %s submitted by %s (category=%s, priority=%s, turns=%d)",
            report.id, identity, report.category, report.priority.value, len(excerpt),
        )

        await self._notify_admins(report)
        return FeedbackSubmitted(
            report_id=report.id,
            message=(
                "Thank you for your feedback. The report has been submitted "
                "and administrators have been notified."
            ),
        )

    async def _notify_admins(self, report: FeedbackReport) -> None:
        if self._email is None:
            return
        try:
            admins = await self._credentials.get_admins()
            if not admins:
                logger.warning("No admin emails configured for feedback notifications")
                return
            subject = (
                f"ICS TA Bot report - {report.category} ({report.priority.value.upper()})"
            )
            body = render_report_email(report)
            for admin in admins:
                if not await self._email.send_email(admin, subject, body):
                    logger.warning("Feedback notification to %s was not delivered", admin)
            logger.info("Feedback notification for %s sent to %d admins", report.id, len(admins))
        except Exception:
            logger.exception("Failed to send feedback notification for %s", report.id)

    # ── Admin ────────────────────────────────────────────────

    async def _load(self) -> list[FeedbackReport]:
        ids = await self._kv.lrange(REPORTS_KEY, 0, -1)
        raw = await self._kv.mget([_report_key(report_id) for report_id in ids])
        # A report evicted between the two reads is simply skipped.
        return [FeedbackReport.model_validate_json(item) for item in raw if item is not None]

    async def get_reports(
        self, limit: int = 50, status: ReportStatus | str | None = None,
    ) -> list[FeedbackReport]:
        """Newest first, optionally filtered by status."""
        reports = await self._load()
        if status is not None:
            wanted = ReportStatus(status)
            reports = [r for r in reports if r.status == wanted]
        reports.sort(key=lambda r: r.timestamp, reverse=True)
        return reports[:limit]

    async def update_report_status(
        self, report_id: str, status: ReportStatus | str, admin: str,
    ) -> FeedbackReport:
        """Move a report to *status*.

        Raises:
            ValueError: unknown status.
            ReportNotFound: no report with *report_id*.
        """
        new_status = ReportStatus(status)
        key = _report_key(report_id)
        raw = await self._kv.get(key)
        if raw is None:
            raise ReportNotFound(report_id)
        report = FeedbackReport.model_validate_json(raw)
        report.status = new_status
        report.updated_at = self._now().isoformat()
        report.updated_by = admin
        # Write only if the report was not evicted in the meantime.
        if not await self._kv.replace(key, report.model_dump_json()):
            raise ReportNotFound(report_id)
        logger.info("Report %s marked %s by %s", report_id, new_status.value, admin)
        return report

    async def get_report_stats(self) -> ReportStats:
        reports = await self._load()
        cutoff = self._now() - timedelta(days=RECENT_DAYS)
        return ReportStats(
            total=len(reports),
            by_status=dict(Counter(r.status.value for r in reports)),
            by_category=dict(Counter(r.category for r in reports)),
            by_priority=dict(Counter(r.priority.value for r in reports)),
            recent=sum(1 for r in reports if datetime.fromisoformat(r.timestamp) > cutoff),
        )

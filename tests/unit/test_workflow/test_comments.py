"""経営者コメント テスト — 送付・期限・再送付・受信箱"""

from datetime import datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.storage import LocalFileStorage, Upload
from src.workflow.comments import CommentService
from src.workflow.errors import (
    ExpiredWindowError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from src.workflow.followup import FollowupService
from src.workflow.issues import IssueService
from tests.factories import Seed, approved_issue_world, issue_fields, make_procedure, select_items

TOKYO = ZoneInfo("Asia/Tokyo")


@pytest.mark.unit
class TestSendForCommenting:
    async def test_send_records_due_date_and_time(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        due = world.now.date() + timedelta(days=5)
        issue = await CommentService(session).send_for_commenting(world.auditor_ctx, issue_id, due)
        assert issue.sent_for_commenting is True
        assert issue.comment_due_date == due
        assert issue.sent_for_commenting_at == world.now

    async def test_due_date_required(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        with pytest.raises(ValidationError):
            await CommentService(session).send_for_commenting(world.auditor_ctx, issue_id, None)

    async def test_unapproved_issue_rejected(self, session: AsyncSession, world: Seed) -> None:
        ra_ids = await select_items(session, world)
        procedure = await make_procedure(session, world, ra_ids[0])
        issue = await IssueService(session).submit_for_verification(world.auditor_ctx, procedure.id, issue_fields())
        with pytest.raises(InvalidTransitionError):
            await CommentService(session).send_for_commenting(
                world.auditor_ctx, issue.id, world.now.date() + timedelta(days=5)
            )

    async def test_auditee_cannot_send(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        with pytest.raises(PermissionDeniedError):
            await CommentService(session).send_for_commenting(
                world.auditee_ctx, issue_id, world.now.date() + timedelta(days=5)
            )


@pytest.mark.unit
class TestSubmitComment:
    async def test_comment_counts_as_response(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session)
        await service.send_for_commenting(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=5))

        later = world.now + timedelta(hours=1)
        await service.submit_comment(world.ctx(world.auditee_user, later), issue_id, "We will assign an owner")
        thread = await service.comment_thread(world.auditor_ctx, issue_id)
        assert thread.recent_comment_count == 1
        assert thread.has_responded is True
        assert thread.comments[0].comment == "We will assign an owner"

    async def test_window_open_until_end_of_due_date(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session)
        due = world.now.date() + timedelta(days=1)
        await service.send_for_commenting(world.auditor_ctx, issue_id, due)

        last_second = datetime(due.year, due.month, due.day, 23, 59, 58, tzinfo=TOKYO)
        await service.submit_comment(world.ctx(world.auditee_user, last_second), issue_id, "Just in time")

        next_day = last_second + timedelta(seconds=3)
        with pytest.raises(ExpiredWindowError):
            await service.submit_comment(world.ctx(world.auditee_user, next_day), issue_id, "Too late")

    async def test_not_requested(self, session: AsyncSession, world: Seed) -> None:
        """フォローアップのみ依頼された課題にはコメントできない"""
        issue_id = await approved_issue_world(session, world)
        await FollowupService(session).send_for_followup(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=5))
        with pytest.raises(InvalidTransitionError):
            await CommentService(session).submit_comment(world.auditee_ctx, issue_id, "Hello")

    async def test_unsent_issue_is_hidden(self, session: AsyncSession, world: Seed) -> None:
        """依頼前の承認済み課題は被監査部門から見えない"""
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session)
        with pytest.raises(NotFoundError):
            await service.submit_comment(world.auditee_ctx, issue_id, "Hello")
        with pytest.raises(NotFoundError):
            await service.comment_thread(world.auditee_ctx, issue_id)

    async def test_empty_comment_rejected(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        with pytest.raises(ValidationError):
            await CommentService(session).submit_comment(world.auditee_ctx, issue_id, "   ")

    async def test_only_auditee_of_the_audit(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session)
        await service.send_for_commenting(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=5))
        with pytest.raises(PermissionDeniedError):
            await service.submit_comment(world.auditor_ctx, issue_id, "Staff cannot answer")

    async def test_other_organization_auditee(self, session: AsyncSession, world: Seed, other_world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session)
        await service.send_for_commenting(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=5))
        with pytest.raises(NotFoundError):
            await service.submit_comment(other_world.auditee_ctx, issue_id, "Not mine")

    async def test_attachment_is_stored(self, session: AsyncSession, world: Seed, tmp_path: Path) -> None:
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session, LocalFileStorage(tmp_path, max_size_bytes=1024))
        await service.send_for_commenting(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=5))
        comment = await service.submit_comment(
            world.auditee_ctx, issue_id, "Policy attached", Upload("policy.pdf", b"%PDF", "application/pdf")
        )
        assert comment.attachment_path is not None
        assert (tmp_path / comment.attachment_path).read_bytes() == b"%PDF"


@pytest.mark.unit
class TestResendForComment:
    async def test_resend_resets_responded(self, session: AsyncSession, world: Seed) -> None:
        """再送付後は以前のコメントを回答としてカウントしない"""
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session)
        await service.send_for_commenting(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=5))
        await service.submit_comment(world.ctx(world.auditee_user, world.now + timedelta(hours=1)), issue_id, "First")

        resent_at = world.now + timedelta(hours=2)
        await service.resend_for_comment(
            world.ctx(world.auditor, resent_at), issue_id, world.now.date() + timedelta(days=10), "Please add dates"
        )
        thread = await service.comment_thread(world.auditor_ctx, issue_id)
        assert thread.recent_comment_count == 0
        assert thread.has_responded is False
        assert thread.resend_count == 1

        await service.submit_comment(world.ctx(world.auditee_user, resent_at + timedelta(hours=1)), issue_id, "Second")
        thread = await service.comment_thread(world.auditee_ctx, issue_id)
        assert thread.recent_comment_count == 1
        assert len(thread.comments) == 3

    async def test_resend_reopens_expired_window(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session)
        await service.send_for_commenting(world.auditor_ctx, issue_id, world.now.date() - timedelta(days=1))
        with pytest.raises(ExpiredWindowError):
            await service.submit_comment(world.auditee_ctx, issue_id, "Late")

        await service.resend_for_comment(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=3))
        comment = await service.submit_comment(
            world.ctx(world.auditee_user, world.now + timedelta(minutes=5)), issue_id, "Now on time"
        )
        assert comment.comment == "Now on time"


@pytest.mark.unit
class TestInboxAndLists:
    async def test_inbox_buckets(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session)

        inbox = await service.auditee_inbox(world.auditee_ctx)
        assert inbox.pending_comments == []

        await service.send_for_commenting(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=5))
        inbox = await service.auditee_inbox(world.auditee_ctx)
        assert [item.issue.id for item in inbox.pending_comments] == [issue_id]
        assert inbox.pending_comments[0].remaining_days == 5
        assert inbox.pending_comments[0].audit_area == "Cash Handling"

        overdue_view = await service.auditee_inbox(world.ctx(world.auditee_user, world.now + timedelta(days=6)))
        assert [item.issue.id for item in overdue_view.overdue_comments] == [issue_id]
        assert overdue_view.overdue_comments[0].is_past_due is True

        await service.submit_comment(world.ctx(world.auditee_user, world.now + timedelta(hours=1)), issue_id, "Done")
        inbox = await service.auditee_inbox(world.ctx(world.auditee_user, world.now + timedelta(hours=2)))
        assert [item.issue.id for item in inbox.commented] == [issue_id]
        assert inbox.pending_comments == []

    async def test_inbox_for_auditee_only(self, session: AsyncSession, world: Seed) -> None:
        with pytest.raises(PermissionDeniedError):
            await CommentService(session).auditee_inbox(world.auditor_ctx)

    async def test_management_comments(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = CommentService(session)
        await service.send_for_commenting(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=5))
        await service.submit_comment(world.ctx(world.auditee_user, world.now + timedelta(hours=1)), issue_id, "Agreed")

        threads = await service.management_comments(world.auditor_ctx, world.audit.id)
        assert [t.issue.id for t in threads] == [issue_id]
        assert threads[0].recent_comment_count == 1

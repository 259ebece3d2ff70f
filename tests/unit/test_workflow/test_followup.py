"""フォローアップ テスト — 回答・期限切れ・再送付・解決・追跡"""

from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import FollowupState
from src.storage import LocalFileStorage, Upload
from src.workflow.comments import CommentService
from src.workflow.errors import ExpiredWindowError, InvalidTransitionError, PermissionDeniedError, ValidationError
from src.workflow.followup import FollowupService, followup_state
from tests.factories import Seed, approved_issue_world


async def _sent(session: AsyncSession, seed: Seed, days: int = 3) -> int:
    issue_id = await approved_issue_world(session, seed)
    await FollowupService(session).send_for_followup(seed.auditor_ctx, issue_id, seed.now.date() + timedelta(days=days))
    return issue_id


@pytest.mark.unit
class TestSubmitFollowup:
    async def test_response_updates_mirror(self, session: AsyncSession, world: Seed, tmp_path: Path) -> None:
        issue_id = await _sent(session, world)
        service = FollowupService(session, LocalFileStorage(tmp_path, max_size_bytes=1024))
        responded_at = world.now + timedelta(hours=3)
        record = await service.submit_followup(
            world.ctx(world.auditee_user, responded_at), issue_id, "Owner assigned", Upload("memo.pdf", b"memo")
        )
        assert record.resend_count == 0
        assert record.evidence_path is not None

        history = await service.followup_history(world.auditor_ctx, issue_id)
        assert len(history) == 1
        assert history[0].response == "Owner assigned"

        rows = await service.followup_tracker(world.auditor_ctx)
        assert rows[0].issue.followup_responded is True
        assert rows[0].issue.followup_response == "Owner assigned"
        assert rows[0].issue.followup_evidence_path == record.evidence_path
        assert rows[0].issue.followup_responded_at == responded_at

    async def test_expired_window(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = FollowupService(session)
        await service.send_for_followup(world.auditor_ctx, issue_id, world.now.date() - timedelta(days=1))
        with pytest.raises(ExpiredWindowError):
            await service.submit_followup(world.auditee_ctx, issue_id, "Late")

    async def test_not_requested(self, session: AsyncSession, world: Seed) -> None:
        """コメント依頼のみの課題にはフォローアップ回答できない"""
        issue_id = await approved_issue_world(session, world)
        await CommentService(session).send_for_commenting(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=5))
        with pytest.raises(InvalidTransitionError):
            await FollowupService(session).submit_followup(world.auditee_ctx, issue_id, "Unprompted")

    async def test_response_required(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await _sent(session, world)
        with pytest.raises(ValidationError):
            await FollowupService(session).submit_followup(world.auditee_ctx, issue_id, "")

    async def test_due_date_required(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        with pytest.raises(ValidationError):
            await FollowupService(session).send_for_followup(world.auditor_ctx, issue_id, None)


@pytest.mark.unit
class TestResendAndResolve:
    async def test_resend_clears_mirror_and_counts(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await _sent(session, world)
        service = FollowupService(session)
        await service.submit_followup(world.auditee_ctx, issue_id, "First answer")

        issue = await service.resend_followup(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=7))
        assert issue.followup_responded is False
        assert issue.followup_response is None
        assert issue.followup_evidence_path is None
        assert issue.followup_responded_at is None

        history = await service.followup_history(world.auditor_ctx, issue_id)
        assert [r.resend_count for r in history] == [1]

        await service.submit_followup(world.ctx(world.auditee_user, world.now + timedelta(days=1)), issue_id, "Second")
        history = await service.followup_history(world.auditee_ctx, issue_id)
        assert [(r.response, r.resend_count) for r in history] == [("Second", 0), ("First answer", 1)]

    async def test_resend_after_expiry_allows_response(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = FollowupService(session)
        await service.send_for_followup(world.auditor_ctx, issue_id, world.now.date() - timedelta(days=1))
        await service.resend_followup(world.auditor_ctx, issue_id, world.now.date() + timedelta(days=3))
        await service.submit_followup(world.auditee_ctx, issue_id, "Fixed")

        rows = await service.followup_tracker(world.auditor_ctx)
        assert rows[0].issue.followup_responded is True

    async def test_resolve_without_response(self, session: AsyncSession, world: Seed) -> None:
        """解決済みは回答有無と独立"""
        issue_id = await _sent(session, world)
        issue = await FollowupService(session).resolve_followup(world.manager_ctx, issue_id)
        assert issue.followup_resolved is True
        assert issue.followup_responded is False
        assert issue.followup_resolved_by == world.manager.id

    async def test_resolve_requires_followup_sent(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        with pytest.raises(InvalidTransitionError):
            await FollowupService(session).resolve_followup(world.manager_ctx, issue_id)

    async def test_auditee_cannot_resolve(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await _sent(session, world)
        with pytest.raises(PermissionDeniedError):
            await FollowupService(session).resolve_followup(world.auditee_ctx, issue_id)


@pytest.mark.unit
class TestTracking:
    async def test_state_progression(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await _sent(session, world, days=2)
        service = FollowupService(session)

        rows = await service.followup_tracker(world.auditor_ctx)
        assert rows[0].state == FollowupState.PENDING
        assert rows[0].remaining_days == 2
        assert rows[0].band == "Medium"
        assert rows[0].auditee_name == "Finance Dept"

        late = await service.followup_tracker(world.ctx(world.auditor, world.now + timedelta(days=3)))
        assert late[0].state == FollowupState.OVERDUE

        await service.submit_followup(world.auditee_ctx, issue_id, "Done")
        assert followup_state((await service.followup_tracker(world.auditor_ctx))[0].issue, world.now) == FollowupState.RESPONDED

        await service.resolve_followup(world.manager_ctx, issue_id)
        rows = await service.followup_tracker(world.auditor_ctx)
        assert rows[0].state == FollowupState.RESOLVED

    async def test_followup_issues_includes_unsent(self, session: AsyncSession, world: Seed) -> None:
        issue_id = await approved_issue_world(session, world)
        service = FollowupService(session)
        rows = await service.followup_issues(world.auditor_ctx, world.audit.id)
        assert [r.issue.id for r in rows] == [issue_id]
        assert rows[0].remaining_days is None
        assert await service.followup_tracker(world.auditor_ctx) == []

    async def test_tracker_is_organization_scoped(self, session: AsyncSession, world: Seed, other_world: Seed) -> None:
        await _sent(session, world)
        assert await FollowupService(session).followup_tracker(other_world.auditor_ctx) == []

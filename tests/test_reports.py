"""Tests for report submission, moderator flags and the moderation queue."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import actor_for, auth_headers, create_user
from moderation_core.core.exceptions import (
    InsufficientPermissionsError,
    RateLimitError,
    ValidationError,
)
from moderation_core.models.notification import NotificationEvent
from moderation_core.models.report import Report
from moderation_core.models.user import User
from moderation_core.schemas.report import QueueFilters, ReportReason, ReportStatus, ReportType
from moderation_core.services import action_service, report_service

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


async def submit(
    db: AsyncSession,
    reporter: User,
    reason: ReportReason = ReportReason.spam,
    report_type: ReportType = ReportType.post,
    target_id: uuid.UUID | None = None,
    description: str | None = None,
    now: datetime | None = None,
):
    return await report_service.submit_report(
        db,
        actor_for(reporter),
        report_type=report_type,
        target_id=target_id or uuid.uuid4(),
        reason=reason,
        description=description,
        now=now,
    )


# ============== Submission ==============


@pytest.mark.asyncio
async def test_submit_report_via_api(client: AsyncClient, regular_user: User):
    target_id = str(uuid.uuid4())

    response = await client.post(
        "/api/v1/moderation/reports",
        json={"report_type": "post", "target_id": target_id, "reason": "harassment"},
        headers=auth_headers(regular_user),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["priority"] == 2
    assert data["target_id"] == target_id
    assert "reporter_id" not in data


@pytest.mark.asyncio
async def test_submit_report_requires_authentication(client: AsyncClient):
    response = await client.post(
        "/api/v1/moderation/reports",
        json={"report_type": "post", "target_id": str(uuid.uuid4()), "reason": "spam"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_report_user_sets_reported_user(
    db_session: AsyncSession, regular_user: User, other_user: User
):
    report = await submit(
        db_session,
        regular_user,
        reason=ReportReason.impersonation,
        report_type=ReportType.user,
        target_id=other_user.id,
    )

    assert report.reported_user_id == other_user.id
    assert report.priority == 3
    assert report.moderator_flagged is False


@pytest.mark.asyncio
async def test_cannot_report_self(db_session: AsyncSession, regular_user: User):
    with pytest.raises(ValidationError) as exc_info:
        await submit(db_session, regular_user, report_type=ReportType.user, target_id=regular_user.id)

    assert exc_info.value.field == "target_id"


@pytest.mark.asyncio
async def test_regular_user_cannot_report_admin(
    db_session: AsyncSession, regular_user: User, admin: User
):
    with pytest.raises(ValidationError):
        await submit(db_session, regular_user, report_type=ReportType.user, target_id=admin.id)


@pytest.mark.asyncio
async def test_report_unknown_user_is_not_found(client: AsyncClient, regular_user: User):
    response = await client.post(
        "/api/v1/moderation/reports",
        json={"report_type": "user", "target_id": str(uuid.uuid4()), "reason": "spam"},
        headers=auth_headers(regular_user),
    )

    assert response.status_code == 404
    assert response.json()["code"] == "MODERATION_NOT_FOUND"


@pytest.mark.asyncio
async def test_other_reason_requires_description(db_session: AsyncSession, regular_user: User):
    with pytest.raises(ValidationError) as exc_info:
        await submit(db_session, regular_user, reason=ReportReason.other, description="   ")

    assert exc_info.value.field == "description"


@pytest.mark.asyncio
async def test_unknown_reason_is_a_validation_error(db_session: AsyncSession, regular_user: User):
    with pytest.raises(ValidationError) as exc_info:
        await report_service.submit_report(
            db_session, actor_for(regular_user), ReportType.post, uuid.uuid4(), "bogus_reason"
        )

    assert exc_info.value.field == "reason"


@pytest.mark.asyncio
async def test_unknown_report_type_is_a_validation_error(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    with pytest.raises(ValidationError) as exc_info:
        await report_service.submit_report(
            db_session, actor_for(regular_user), "video", uuid.uuid4(), ReportReason.spam
        )
    assert exc_info.value.field == "report_type"

    with pytest.raises(ValidationError) as exc_info:
        await report_service.moderator_flag_content(
            db_session,
            actor_for(moderator),
            ReportType.comment,
            uuid.uuid4(),
            "not_a_reason",
            internal_notes="Seen in the queue",
        )
    assert exc_info.value.field == "reason"


@pytest.mark.asyncio
async def test_description_is_sanitized(db_session: AsyncSession, regular_user: User):
    report = await submit(
        db_session,
        regular_user,
        reason=ReportReason.other,
        description="  <b>Looks</b> like a scam\x00  ",
    )

    assert report.description == "Looks like a scam"


@pytest.mark.asyncio
async def test_description_over_limit_is_rejected(client: AsyncClient, regular_user: User):
    response = await client.post(
        "/api/v1/moderation/reports",
        json={
            "report_type": "post",
            "target_id": str(uuid.uuid4()),
            "reason": "other",
            "description": "x" * 1001,
        },
        headers=auth_headers(regular_user),
    )

    assert response.status_code == 422
    assert response.json()["code"] == "MODERATION_VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_duplicate_report_is_rejected(db_session: AsyncSession, regular_user: User):
    target_id = uuid.uuid4()
    await submit(db_session, regular_user, target_id=target_id, now=BASE_TIME)

    with pytest.raises(ValidationError):
        await submit(db_session, regular_user, target_id=target_id, now=BASE_TIME + timedelta(hours=1))

    await db_session.refresh(regular_user)
    # Outside the duplicate window the same target can be reported again
    again = await submit(
        db_session, regular_user, target_id=target_id, now=BASE_TIME + timedelta(hours=25)
    )
    assert again.status == ReportStatus.pending.value


# ============== Rate limiting ==============


@pytest.mark.asyncio
async def test_eleventh_report_in_a_day_is_rate_limited(
    db_session: AsyncSession, regular_user: User
):
    for i in range(10):
        await submit(db_session, regular_user, now=BASE_TIME + timedelta(minutes=i))

    with pytest.raises(RateLimitError) as exc_info:
        await submit(db_session, regular_user, now=BASE_TIME + timedelta(hours=1))

    assert exc_info.value.status_code == 429
    assert exc_info.value.metadata["bucket"] == "reports"
    # Oldest hit leaves the window 23 hours later
    assert exc_info.value.metadata["retry_after"] == 23 * 3600

    count = (await db_session.execute(select(func.count(Report.id)))).scalar()
    assert count == 10


@pytest.mark.asyncio
async def test_rate_limit_window_slides(db_session: AsyncSession, regular_user: User):
    for i in range(10):
        await submit(db_session, regular_user, now=BASE_TIME + timedelta(minutes=i))

    # First hit is now outside the 24h window
    report = await submit(db_session, regular_user, now=BASE_TIME + timedelta(hours=24, seconds=30))

    assert report.status == ReportStatus.pending.value


@pytest.mark.asyncio
async def test_rate_limit_is_per_user(
    db_session: AsyncSession, regular_user: User, other_user: User
):
    for i in range(10):
        await submit(db_session, regular_user, now=BASE_TIME + timedelta(minutes=i))

    report = await submit(db_session, other_user, now=BASE_TIME + timedelta(minutes=11))

    assert report.reporter_id == other_user.id


@pytest.mark.asyncio
async def test_rate_limited_response_has_retry_after(client: AsyncClient, regular_user: User):
    headers = auth_headers(regular_user)
    for _ in range(10):
        response = await client.post(
            "/api/v1/moderation/reports",
            json={"report_type": "comment", "target_id": str(uuid.uuid4()), "reason": "spam"},
            headers=headers,
        )
        assert response.status_code == 201

    response = await client.post(
        "/api/v1/moderation/reports",
        json={"report_type": "comment", "target_id": str(uuid.uuid4()), "reason": "spam"},
        headers=headers,
    )

    assert response.status_code == 429
    data = response.json()
    assert data["code"] == "MODERATION_RATE_LIMIT_EXCEEDED"
    assert int(response.headers["Retry-After"]) > 0


# ============== Notifications ==============


@pytest.mark.asyncio
async def test_urgent_report_pages_staff(
    db_session: AsyncSession, regular_user: User, moderator: User, admin: User
):
    report = await submit(db_session, regular_user, reason=ReportReason.self_harm)

    result = await db_session.execute(
        select(NotificationEvent).where(NotificationEvent.related_report_id == report.id)
    )
    events = result.scalars().all()

    assert {e.recipient_id for e in events} == {moderator.id, admin.id}
    assert all(e.kind == "high_priority_report" for e in events)


@pytest.mark.asyncio
async def test_routine_report_does_not_page_staff(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    await submit(db_session, regular_user, reason=ReportReason.spam)

    count = (await db_session.execute(select(func.count(NotificationEvent.id)))).scalar()
    assert count == 0


# ============== Moderator flags ==============


@pytest.mark.asyncio
async def test_moderator_flag_goes_straight_to_review(client: AsyncClient, moderator: User):
    response = await client.post(
        "/api/v1/moderation/flags",
        json={
            "report_type": "track",
            "target_id": str(uuid.uuid4()),
            "reason": "copyright_violation",
            "internal_notes": "Matches a takedown request",
        },
        headers=auth_headers(moderator),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "under_review"
    assert data["moderator_flagged"] is True
    assert data["priority"] == 2
    assert data["reporter_id"] == str(moderator.id)


@pytest.mark.asyncio
async def test_regular_user_cannot_flag(client: AsyncClient, regular_user: User):
    response = await client.post(
        "/api/v1/moderation/flags",
        json={
            "report_type": "post",
            "target_id": str(uuid.uuid4()),
            "reason": "spam",
            "internal_notes": "Spam",
        },
        headers=auth_headers(regular_user),
    )

    assert response.status_code == 403
    assert response.json()["code"] == "MODERATION_INSUFFICIENT_PERMISSIONS"


# ============== Queue ==============


@pytest.mark.asyncio
async def test_queue_order(
    db_session: AsyncSession, regular_user: User, other_user: User, moderator: User
):
    old_spam = await submit(db_session, regular_user, ReportReason.spam, now=BASE_TIME)
    new_self_harm = await submit(
        db_session, other_user, ReportReason.self_harm, now=BASE_TIME + timedelta(minutes=5)
    )
    newer_spam = await submit(
        db_session, other_user, ReportReason.spam, now=BASE_TIME + timedelta(minutes=10)
    )
    flag = await report_service.moderator_flag_content(
        db_session,
        actor_for(moderator),
        report_type=ReportType.post,
        target_id=uuid.uuid4(),
        reason=ReportReason.other,
        internal_notes="Spotted during review",
        priority=4,
        now=BASE_TIME + timedelta(minutes=20),
    )

    reports, total = await report_service.fetch_moderation_queue(db_session, actor_for(moderator))

    assert total == 4
    assert [r.id for r in reports] == [flag.id, new_self_harm.id, old_spam.id, newer_spam.id]


@pytest.mark.asyncio
async def test_queue_filters(
    db_session: AsyncSession, regular_user: User, moderator: User
):
    await submit(db_session, regular_user, ReportReason.spam, ReportType.post)
    comment = await submit(db_session, regular_user, ReportReason.harassment, ReportType.comment)

    reports, total = await report_service.fetch_moderation_queue(
        db_session,
        actor_for(moderator),
        QueueFilters(report_type=ReportType.comment),
    )
    assert total == 1
    assert reports[0].id == comment.id

    reports, total = await report_service.fetch_moderation_queue(
        db_session,
        actor_for(moderator),
        QueueFilters(status=[ReportStatus.resolved]),
    )
    assert total == 0


@pytest.mark.asyncio
async def test_queue_via_api(client: AsyncClient, db_session: AsyncSession, regular_user: User, moderator: User):
    await submit(db_session, regular_user, ReportReason.hate_speech)

    response = await client.get(
        "/api/v1/moderation/queue",
        params={"status": "pending", "limit": 10},
        headers=auth_headers(moderator),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["limit"] == 10
    assert data["reports"][0]["reason"] == "hate_speech"


@pytest.mark.asyncio
async def test_queue_requires_staff(db_session: AsyncSession, regular_user: User):
    with pytest.raises(InsufficientPermissionsError):
        await report_service.fetch_moderation_queue(db_session, actor_for(regular_user))


@pytest.mark.asyncio
async def test_suspended_user_cannot_report(client: AsyncClient, db_session: AsyncSession, admin: User):
    user = await create_user(db_session, "suspended@example.com")
    await action_service.apply_restriction(
        db_session,
        actor_for(admin),
        user_id=user.id,
        restriction_type="suspended",
        reason="Repeated abuse",
        duration_days=3,
    )

    response = await client.post(
        "/api/v1/moderation/reports",
        json={"report_type": "post", "target_id": str(uuid.uuid4()), "reason": "spam"},
        headers=auth_headers(user),
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Account is suspended"

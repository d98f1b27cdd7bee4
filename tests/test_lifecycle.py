import re
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from app.api.activity_logs.models import ActivityLog
from app.api.activity_logs.schemas import ActivityAction
from app.api.users.schemas import UserRole
from app.api.visitors.crud import visitor as visitor_crud
from app.api.visitors.schemas import VisitorRegister, VisitorStatus
from app.api.visits.crud import EMERGENCY_CHECKOUT_NOTE
from app.api.visits.crud import visit as visit_crud
from app.api.visits.lifecycle import VisitLifecycle
from app.api.visits.models import Visit
from app.api.visits.schemas import VisitState
from app.core.exceptions.visit_exceptions import Conflict, NotFound, PreconditionFailed
from tests.conftest import NOW, token_for


def add_visit(db_session, visitor, visit_date, **kwargs):
    visit = Visit(
        visitor_id=visitor.id,
        host_id=kwargs.pop('host_id', visitor.host_id),
        visit_date=visit_date,
        **kwargs,
    )
    db_session.add(visit)
    db_session.commit()
    return visit


def actions_for(db_session, visitor_id):
    logs = (
        db_session.query(ActivityLog)
        .filter(ActivityLog.visitor_id == visitor_id)
        .order_by(ActivityLog.id)
        .all()
    )
    return [log.action for log in logs]


def test_full_visit_scenario(db_session, lifecycle, test_host, test_reception):
    """Register, approve, check in and check out a visitor"""
    actor = token_for(test_reception)
    visitor, visit = visitor_crud.register(
        db_session,
        VisitorRegister(
            first_name='Ada',
            last_name='Lovelace',
            phone='555-0300',
            email='Ada@Example.com',
            host_id=test_host.id,
            visit_date=NOW + timedelta(hours=1),
        ),
    )
    assert visitor.status == VisitorStatus.PENDING.value
    assert visitor.email == 'ada@example.com'
    assert visit.state == VisitState.SCHEDULED
    assert visit.host_id == test_host.id

    with pytest.raises(PreconditionFailed):
        lifecycle.check_in(db_session, visitor.id, actor)

    visitor = lifecycle.approve(db_session, visitor.id, actor)
    assert visitor.status == VisitorStatus.APPROVED.value

    checked_in = lifecycle.check_in(db_session, visitor.id, actor)
    # The visit scheduled for today is reused
    assert checked_in.id == visit.id
    assert checked_in.check_in_time == NOW
    assert checked_in.updated_at == NOW
    assert checked_in.state == VisitState.CHECKED_IN
    assert re.fullmatch(r'BADGE-[A-Z0-9]{8}', checked_in.badge_number)

    with pytest.raises(Conflict):
        lifecycle.check_in(db_session, visitor.id, actor)

    checked_out = lifecycle.check_out(db_session, actor, visitor_id=visitor.id)
    assert checked_out.id == visit.id
    assert checked_out.check_out_time == NOW
    assert checked_out.updated_at == NOW
    assert checked_out.state == VisitState.CHECKED_OUT

    with pytest.raises(PreconditionFailed):
        lifecycle.check_out(db_session, actor, visitor_id=visitor.id)
    with pytest.raises(Conflict):
        lifecycle.check_out(db_session, actor, visit_id=visit.id)

    assert actions_for(db_session, visitor.id) == [
        ActivityAction.REGISTERED.value,
        ActivityAction.APPROVED.value,
        ActivityAction.CHECK_IN.value,
        ActivityAction.CHECK_OUT.value,
    ]
    performers = db_session.query(ActivityLog.performed_by).order_by(ActivityLog.id).all()
    assert [p for (p,) in performers] == [None] + [test_reception.id] * 3


def test_check_in_creates_visit_when_none_scheduled(
    db_session, lifecycle, approved_visitor, test_reception
):
    visit = lifecycle.check_in(
        db_session, approved_visitor.id, token_for(test_reception)
    )
    assert visit.visit_date == NOW
    assert visit.host_id == approved_visitor.host_id
    assert db_session.query(Visit).count() == 1


def test_check_in_skips_visits_on_other_days(
    db_session, lifecycle, approved_visitor, test_reception
):
    tomorrow = add_visit(db_session, approved_visitor, NOW + timedelta(days=1))
    visit = lifecycle.check_in(
        db_session, approved_visitor.id, token_for(test_reception)
    )
    assert visit.id != tomorrow.id
    db_session.refresh(tomorrow)
    assert tomorrow.state == VisitState.SCHEDULED


def test_check_in_with_visit_of_other_visitor(
    db_session, lifecycle, approved_visitor, create_test_visitor, test_reception
):
    other = create_test_visitor('555-0900', VisitorStatus.APPROVED)
    other_visit = add_visit(db_session, other, NOW)

    with pytest.raises(NotFound):
        lifecycle.check_in(
            db_session,
            approved_visitor.id,
            token_for(test_reception),
            visit_id=other_visit.id,
        )


def test_check_in_with_checked_out_visit(
    db_session, lifecycle, approved_visitor, test_reception
):
    visit = add_visit(
        db_session,
        approved_visitor,
        NOW,
        check_in_time=NOW - timedelta(hours=2),
        check_out_time=NOW - timedelta(hours=1),
    )
    with pytest.raises(PreconditionFailed):
        lifecycle.check_in(
            db_session,
            approved_visitor.id,
            token_for(test_reception),
            visit_id=visit.id,
        )


def test_check_in_with_badge_in_use(
    db_session, lifecycle, approved_visitor, create_test_visitor, test_reception
):
    other = create_test_visitor('555-0901', VisitorStatus.APPROVED)
    add_visit(db_session, other, NOW, badge_number='BADGE-TAKEN000')

    with pytest.raises(Conflict):
        lifecycle.check_in(
            db_session,
            approved_visitor.id,
            token_for(test_reception),
            badge_number='BADGE-TAKEN000',
        )
    # The visit created for the attempt was rolled back
    assert (
        db_session.query(Visit).filter(Visit.visitor_id == approved_visitor.id).count()
        == 0
    )


def test_check_in_with_given_badge(
    db_session, lifecycle, approved_visitor, test_reception
):
    visit = lifecycle.check_in(
        db_session,
        approved_visitor.id,
        token_for(test_reception),
        badge_number='BADGE-LOBBY001',
    )
    assert visit.badge_number == 'BADGE-LOBBY001'


def test_check_out_requires_check_in(
    db_session, lifecycle, approved_visitor, test_reception
):
    visit = add_visit(db_session, approved_visitor, NOW)
    actor = token_for(test_reception)

    with pytest.raises(PreconditionFailed):
        lifecycle.check_out(db_session, actor, visit_id=visit.id)
    with pytest.raises(PreconditionFailed):
        lifecycle.check_out(db_session, actor, visitor_id=approved_visitor.id)


def test_single_open_visit_enforced_by_storage(db_session, approved_visitor):
    """Two open visits for one visitor are rejected at commit"""
    db_session.add_all(
        [
            Visit(
                visitor_id=approved_visitor.id,
                visit_date=NOW,
                check_in_time=NOW,
            ),
            Visit(
                visitor_id=approved_visitor.id,
                visit_date=NOW,
                check_in_time=NOW + timedelta(minutes=1),
            ),
        ]
    )
    with pytest.raises(Conflict):
        visit_crud.commit(db_session)


def test_closed_visits_do_not_count_as_open(db_session, approved_visitor):
    for hours in (3, 2):
        db_session.add(
            Visit(
                visitor_id=approved_visitor.id,
                visit_date=NOW,
                check_in_time=NOW - timedelta(hours=hours),
                check_out_time=NOW - timedelta(hours=hours - 1),
            )
        )
    db_session.add(
        Visit(visitor_id=approved_visitor.id, visit_date=NOW, check_in_time=NOW)
    )
    visit_crud.commit(db_session)
    assert db_session.query(Visit).count() == 3


def test_emergency_checkout_all(
    db_session, lifecycle, approved_visitor, create_test_visitor, test_admin
):
    actor = token_for(test_admin)
    other = create_test_visitor('555-0400', VisitorStatus.APPROVED, first_name='Max')
    tagged = add_visit(db_session, approved_visitor, NOW, notes='VIP')
    untagged = add_visit(db_session, other, NOW)
    scheduled = add_visit(db_session, other, NOW + timedelta(days=1))

    lifecycle.check_in(db_session, approved_visitor.id, actor, visit_id=tagged.id)
    lifecycle.check_in(db_session, other.id, actor, visit_id=untagged.id)

    assert lifecycle.emergency_checkout_all(db_session, actor) == 2

    db_session.refresh(tagged)
    db_session.refresh(untagged)
    db_session.refresh(scheduled)
    assert tagged.check_out_time == NOW
    assert tagged.updated_at == NOW
    assert tagged.notes == f'VIP {EMERGENCY_CHECKOUT_NOTE}'
    assert untagged.notes == EMERGENCY_CHECKOUT_NOTE
    assert scheduled.check_out_time is None
    assert lifecycle.currently_checked_in(db_session) == []

    # Nothing left to close
    assert lifecycle.emergency_checkout_all(db_session, actor) == 0
    emergency_logs = (
        db_session.query(ActivityLog)
        .filter(ActivityLog.action == ActivityAction.EMERGENCY_CHECK_OUT.value)
        .count()
    )
    assert emergency_logs == 2


def test_approve_twice_is_rejected(db_session, lifecycle, test_visitor, test_admin):
    actor = token_for(test_admin)
    lifecycle.approve(db_session, test_visitor.id, actor)
    with pytest.raises(PreconditionFailed):
        lifecycle.approve(db_session, test_visitor.id, actor)


def test_reject_from_approved(db_session, lifecycle, approved_visitor, test_admin):
    visitor = lifecycle.reject(
        db_session, approved_visitor.id, 'Badge lost', token_for(test_admin)
    )
    assert visitor.status == VisitorStatus.REJECTED.value
    assert visitor.notes == 'Badge lost'


def test_rejected_is_terminal(db_session, lifecycle, test_visitor, test_admin):
    actor = token_for(test_admin)
    lifecycle.reject(db_session, test_visitor.id, 'Unknown', actor)

    with pytest.raises(PreconditionFailed):
        lifecycle.approve(db_session, test_visitor.id, actor)
    with pytest.raises(PreconditionFailed):
        lifecycle.reject(db_session, test_visitor.id, 'Again', actor)
    with pytest.raises(PreconditionFailed):
        lifecycle.check_in(db_session, test_visitor.id, actor)


def test_approve_unknown_visitor(db_session, lifecycle, test_admin):
    with pytest.raises(NotFound):
        lifecycle.approve(db_session, 999, token_for(test_admin))


def test_host_cannot_approve_other_hosts_visitor(
    db_session, lifecycle, create_test_user, create_test_visitor
):
    host = create_test_user('host2@example.com', UserRole.HOST)
    visitor = create_test_visitor('555-0500')

    with pytest.raises(HTTPException) as exc:
        lifecycle.approve(db_session, visitor.id, token_for(host))
    assert exc.value.status_code == 403


def test_todays_visits_day_boundaries(db_session, lifecycle, approved_visitor):
    last_ms = add_visit(db_session, approved_visitor, datetime(2025, 7, 2, 23, 59, 59, 999000))
    first_ms = add_visit(db_session, approved_visitor, datetime(2025, 7, 2, 0, 0, 0, 1000))
    add_visit(db_session, approved_visitor, datetime(2025, 7, 1, 23, 59, 59, 999000))
    add_visit(db_session, approved_visitor, datetime(2025, 7, 3, 0, 0, 0, 1000))

    visits = lifecycle.todays_visits(db_session)
    assert [v.id for v in visits] == [first_ms.id, last_ms.id]


def test_todays_visits_for_given_day(db_session, lifecycle, approved_visitor):
    visit = add_visit(db_session, approved_visitor, datetime(2025, 7, 3, 9, 0))
    visits = lifecycle.todays_visits(db_session, day=datetime(2025, 7, 3).date())
    assert [v.id for v in visits] == [visit.id]


def test_weekly_total_boundaries(db_session, lifecycle, approved_visitor):
    add_visit(db_session, approved_visitor, datetime(2025, 6, 28, 23, 59, 59, 999000))
    add_visit(db_session, approved_visitor, datetime(2025, 6, 29, 0, 0, 0, 1000))
    add_visit(db_session, approved_visitor, datetime(2025, 7, 5, 23, 59, 59, 999000))
    add_visit(db_session, approved_visitor, datetime(2025, 7, 6, 0, 0, 0, 1000))

    assert lifecycle.weekly_total(db_session) == 2


def test_weekly_total_includes_week_start(db_session, lifecycle, approved_visitor):
    add_visit(db_session, approved_visitor, datetime(2025, 6, 29))
    add_visit(db_session, approved_visitor, datetime(2025, 7, 6))

    assert lifecycle.weekly_total(db_session) == 1


def test_checked_in_summaries_duration(
    db_session, approved_visitor, test_reception
):
    VisitLifecycle(clock=lambda: NOW).check_in(
        db_session, approved_visitor.id, token_for(test_reception)
    )
    later = VisitLifecycle(clock=lambda: NOW + timedelta(hours=2, minutes=5))

    summaries = later.checked_in_summaries(db_session)
    assert len(summaries) == 1
    assert summaries[0].duration == '2h 5m'
    assert summaries[0].visitor.id == approved_visitor.id
    assert summaries[0].checked_in_at == NOW


def test_statistics(
    db_session,
    lifecycle,
    approved_visitor,
    test_visitor,
    create_test_user,
    create_test_visitor,
    test_reception,
):
    actor = token_for(test_reception)
    lifecycle.check_in(db_session, approved_visitor.id, actor)
    add_visit(db_session, approved_visitor, NOW + timedelta(hours=3))
    add_visit(db_session, approved_visitor, NOW - timedelta(days=2))

    other_host = create_test_user('host3@example.com', UserRole.HOST)
    other = create_test_visitor('555-0600', VisitorStatus.APPROVED, other_host.id, 'Max')
    add_visit(db_session, other, NOW)

    stats = lifecycle.statistics(db_session)
    assert stats.total_visitors == 3
    assert stats.today_visits == 3
    assert stats.today_checkins == 1
    assert stats.currently_checked_in == 1
    assert stats.weekly_visits == 4
    assert stats.pending_approvals == 1

    scoped = lifecycle.statistics(db_session, host_id=other_host.id)
    assert scoped.total_visitors == 1
    assert scoped.today_visits == 1
    assert scoped.today_checkins == 0
    assert scoped.currently_checked_in == 0
    assert scoped.weekly_visits == 1
    assert scoped.pending_approvals == 0

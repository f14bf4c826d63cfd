"""
HTTP routes for the Ngage API.

The caller is identified by the X-Member-Id header; in production the
Firebase ID token is verified upstream and only the resolved member id
reaches this service.
"""

from __future__ import annotations

from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Header, Query, UploadFile

from ngage.deadlines import get_deadline_status
from ngage.dependencies import Services, get_services
from ngage.errors import AuthenticationError, AuthorizationError
from ngage.integrations import CalendarEvent, IntegrationMessage
from ngage.log_buffer import get_recent_log_handler
from ngage.schemas import (
    ActivityRequest,
    AnalyticsPeriodRequest,
    AnalyticsReportRequest,
    AssignJudgeRequest,
    AwardBadgeRequest,
    BadgeVisibilityRequest,
    CalendarEventRequest,
    CloneEventRequest,
    CommentRequest,
    CountResponse,
    CreateBadgeRequest,
    CreateEventRequest,
    CreateGroupRequest,
    CreateMilestoneRequest,
    CreatePostRequest,
    CreateRubricRequest,
    CreateSubmissionRequest,
    CreateTeamRequest,
    DeadlineStatusResponse,
    DefaultMemberRequest,
    EventAccessRequest,
    EventStatusRequest,
    GrantConsentRequest,
    GroupMemberRequest,
    GroupRoleRequest,
    IntegrationConfigRequest,
    IntegrationMessageRequest,
    JudgeCommentRequest,
    LikeResponse,
    ModerationActionRequest,
    NotificationPreferencesRequest,
    PrerequisitesRequest,
    ReportContentRequest,
    ReviewReportRequest,
    ScheduleEventRequest,
    ScoreRequest,
    StatusResponse,
    SubmissionContentRequest,
    SubmissionStatusRequest,
    TeamLeadRequest,
    TeamMembersRequest,
    UpdateEventRequest,
    UpdateGroupRequest,
    UpdateMemberRequest,
    UpdatePostRequest,
    UpdateTeamRequest,
)
from ngage_shared.json_utils import to_json_ready
from ngage_shared.leaderboard import LeaderboardFilter, LeaderboardSort
from ngage_shared.models import NotificationPreferences, ScoringCriterion
from ngage_shared.types import (
    ConsentType,
    IntegrationType,
    LeaderboardSortField,
    NotificationType,
    ReportStatus,
    SubmissionStatus,
)

router = APIRouter()


def get_current_member_id(x_member_id: Optional[str] = Header(None)) -> str:
    if not x_member_id:
        raise AuthenticationError("Missing X-Member-Id header")
    return x_member_id


def _require_admin(services: Services, group_id: str, member_id: str) -> None:
    if not services.groups.is_group_admin(group_id, member_id):
        raise AuthorizationError("Only group admins can perform this action")


def _require_organizer(services: Services, event_id: str, member_id: str):
    event = services.collections.events.require(event_id)
    if event.created_by != member_id and not services.groups.is_group_admin(
        event.group_id, member_id
    ):
        raise AuthorizationError("Only the event organizer or a group admin can do this")
    return event


# Members


@router.get("/members/{member_id}")
def get_member(member_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.collections.members.require(member_id))


@router.patch("/members/{member_id}")
def update_member(
    member_id: str,
    payload: UpdateMemberRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    if caller != member_id:
        raise AuthorizationError("Members can only update their own profile")
    updated = services.members.update_member_profile(
        member_id, payload.model_dump(exclude_unset=True)
    )
    return to_json_ready(updated)


@router.get("/users/{user_id}/members")
def get_user_members(user_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.members.get_user_members(user_id))


@router.post("/users/{user_id}/default-member")
def switch_default_member(
    user_id: str, payload: DefaultMemberRequest, services: Services = Depends(get_services)
):
    return to_json_ready(services.members.switch_default_member(user_id, payload.member_id))


@router.post("/users/{user_id}/claim-profiles")
def claim_member_profiles(user_id: str, services: Services = Depends(get_services)):
    user = services.collections.users.require(user_id)
    return to_json_ready(services.members.claim_member_profiles(user))


# Groups


@router.post("/groups", status_code=201)
def create_group(
    payload: CreateGroupRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    group = services.groups.create_group(
        payload.name, payload.description, payload.group_type, caller, payload.settings
    )
    return to_json_ready(group)


@router.get("/groups/{group_id}")
def get_group(group_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.collections.groups.require(group_id))


@router.patch("/groups/{group_id}")
def update_group(
    group_id: str,
    payload: UpdateGroupRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    updated = services.groups.update_group(group_id, payload.model_dump(exclude_unset=True))
    return to_json_ready(updated)


@router.delete("/groups/{group_id}", response_model=StatusResponse)
def delete_group(
    group_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    services.groups.delete_group(group_id)
    return StatusResponse()


@router.get("/groups/{group_id}/members")
def get_group_members(group_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.groups.get_group_members(group_id))


@router.post("/groups/{group_id}/members", status_code=201)
def add_group_member(
    group_id: str,
    payload: GroupMemberRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    membership = services.groups.add_member_to_group(group_id, payload.member_id, payload.role)
    return to_json_ready(membership)


@router.delete("/groups/{group_id}/members/{member_id}", response_model=StatusResponse)
def remove_group_member(
    group_id: str,
    member_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    if caller != member_id:
        _require_admin(services, group_id, caller)
    services.groups.remove_member_from_group(group_id, member_id)
    return StatusResponse()


@router.put("/groups/{group_id}/members/{member_id}/role")
def update_group_member_role(
    group_id: str,
    member_id: str,
    payload: GroupRoleRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    return to_json_ready(services.groups.update_member_role(group_id, member_id, payload.role))


@router.get("/members/{member_id}/groups")
def get_member_groups(member_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.groups.get_member_groups(member_id))


# Teams


@router.post("/teams", status_code=201)
def create_team(
    payload: CreateTeamRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, payload.group_id, caller)
    team = services.teams.create_team(
        payload.group_id,
        payload.name,
        payload.description,
        payload.team_lead_id or caller,
        member_ids=payload.member_ids,
        max_members=payload.max_members,
        team_type=payload.team_type,
        logo_url=payload.logo_url,
    )
    return to_json_ready(team)


@router.get("/teams/{team_id}")
def get_team(team_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.collections.teams.require(team_id))


@router.patch("/teams/{team_id}")
def update_team(
    team_id: str,
    payload: UpdateTeamRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    team = services.collections.teams.require(team_id)
    if team.team_lead_id != caller:
        _require_admin(services, team.group_id, caller)
    updated = services.teams.update_team(team_id, payload.model_dump(exclude_unset=True))
    return to_json_ready(updated)


@router.delete("/teams/{team_id}", response_model=StatusResponse)
def delete_team(
    team_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    team = services.collections.teams.require(team_id)
    _require_admin(services, team.group_id, caller)
    services.teams.delete_team(team_id)
    return StatusResponse()


@router.post("/teams/{team_id}/members")
def add_team_members(
    team_id: str,
    payload: TeamMembersRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    team = services.collections.teams.require(team_id)
    if team.team_lead_id != caller:
        _require_admin(services, team.group_id, caller)
    return to_json_ready(services.teams.add_members_to_team(team_id, payload.member_ids))


@router.delete("/teams/{team_id}/members/{member_id}")
def remove_team_member(
    team_id: str,
    member_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    team = services.collections.teams.require(team_id)
    if team.team_lead_id != caller and caller != member_id:
        _require_admin(services, team.group_id, caller)
    return to_json_ready(services.teams.remove_member_from_team(team_id, member_id))


@router.put("/teams/{team_id}/lead")
def change_team_lead(
    team_id: str,
    payload: TeamLeadRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    team = services.collections.teams.require(team_id)
    if team.team_lead_id != caller:
        _require_admin(services, team.group_id, caller)
    return to_json_ready(services.teams.change_team_lead(team_id, payload.member_id))


@router.get("/groups/{group_id}/teams")
def get_group_teams(
    group_id: str,
    active_only: bool = Query(True),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.teams.get_group_teams(group_id, active_only=active_only))


@router.get("/groups/{group_id}/unassigned-members")
def get_unassigned_members(group_id: str, services: Services = Depends(get_services)):
    return {"memberIds": services.teams.get_unassigned_members_in_group(group_id)}


@router.get("/teams/{team_id}/stats")
def get_team_stats(team_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.teams.get_team_stats(team_id))


# Events


@router.post("/events", status_code=201)
def create_event(
    payload: CreateEventRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, payload.group_id, caller)
    event = services.events.create_event(
        payload.group_id,
        payload.title,
        payload.description,
        payload.event_type,
        caller,
        start_time=payload.start_time,
        end_time=payload.end_time,
        submission_deadline=payload.submission_deadline,
        eligible_team_ids=payload.eligible_team_ids,
        judging_criteria=payload.judging_criteria,
    )
    return to_json_ready(event)


@router.get("/events/{event_id}")
def get_event(event_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.collections.events.require(event_id))


@router.patch("/events/{event_id}")
def update_event(
    event_id: str,
    payload: UpdateEventRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_organizer(services, event_id, caller)
    updated = services.events.update_event(event_id, payload.model_dump(exclude_unset=True))
    return to_json_ready(updated)


@router.delete("/events/{event_id}", response_model=StatusResponse)
def delete_event(
    event_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_organizer(services, event_id, caller)
    services.events.delete_event(event_id)
    return StatusResponse()


@router.post("/events/{event_id}/schedule")
def schedule_event(
    event_id: str,
    payload: ScheduleEventRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_organizer(services, event_id, caller)
    event = services.events.schedule_event(
        event_id, payload.start_time, payload.end_time, payload.submission_deadline
    )
    return to_json_ready(event)


@router.put("/events/{event_id}/status")
def update_event_status(
    event_id: str,
    payload: EventStatusRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_organizer(services, event_id, caller)
    return to_json_ready(services.events.update_event_status(event_id, payload.status))


@router.post("/events/{event_id}/clone", status_code=201)
def clone_event(
    event_id: str,
    payload: CloneEventRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_organizer(services, event_id, caller)
    event = services.events.clone_event(
        event_id,
        caller,
        new_title=payload.new_title,
        new_group_id=payload.new_group_id,
        preserve_schedule=payload.preserve_schedule,
        preserve_access_control=payload.preserve_access_control,
        new_eligible_team_ids=payload.new_eligible_team_ids,
    )
    return to_json_ready(event)


@router.put("/events/{event_id}/access")
def update_event_access(
    event_id: str,
    payload: EventAccessRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_organizer(services, event_id, caller)
    return to_json_ready(services.events.update_event_access(event_id, payload.eligible_team_ids))


@router.put("/events/{event_id}/prerequisites")
def set_event_prerequisites(
    event_id: str,
    payload: PrerequisitesRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_organizer(services, event_id, caller)
    event = services.events.set_event_prerequisites(event_id, payload.prerequisite_ids)
    return to_json_ready(event)


@router.get("/groups/{group_id}/events")
def get_group_events(
    group_id: str,
    search: Optional[str] = Query(None),
    services: Services = Depends(get_services),
):
    if search:
        return to_json_ready(services.events.search_events(group_id, search))
    return to_json_ready(services.events.get_group_events(group_id))


@router.get("/groups/{group_id}/teams/{team_id}/events")
def get_accessible_events(
    group_id: str, team_id: str, services: Services = Depends(get_services)
):
    return to_json_ready(services.events.get_accessible_events_for_team(group_id, team_id))


@router.get("/events/{event_id}/deadline", response_model=DeadlineStatusResponse)
def get_event_deadline(event_id: str, services: Services = Depends(get_services)):
    event = services.collections.events.require(event_id)
    status = get_deadline_status(event, services.deadlines.clock())
    remaining = services.deadlines.get_time_until_deadline(event)
    return DeadlineStatusResponse(
        event_id=event.id,
        status=status.value,
        time_remaining=services.deadlines.format_time_remaining(event),
        seconds_remaining=remaining.total_seconds() if remaining is not None else None,
        has_passed=services.deadlines.has_deadline_passed(event),
        is_urgent=status.is_urgent,
        requires_attention=status.requires_attention,
    )


@router.post("/events/{event_id}/deadline/enforce")
def enforce_event_deadline(
    event_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    event = _require_organizer(services, event_id, caller)
    return to_json_ready(services.deadlines.enforce_deadline(event))


@router.post("/deadlines/check")
def check_deadlines(
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return services.deadlines.check_all_deadlines().as_dict()


# Submissions


@router.post("/submissions", status_code=201)
def create_submission(
    payload: CreateSubmissionRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    submission = services.submissions.create_submission(
        payload.event_id, payload.team_id, caller, payload.content
    )
    return to_json_ready(submission)


@router.get("/submissions/{submission_id}")
def get_submission(submission_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.collections.submissions.require(submission_id))


def _require_team_member(services: Services, submission_id: str, member_id: str) -> None:
    submission = services.collections.submissions.require(submission_id)
    team = services.collections.teams.require(submission.team_id)
    if not team.has_member(member_id):
        raise AuthorizationError("Only team members can change this submission")


@router.put("/submissions/{submission_id}/content")
def update_submission_content(
    submission_id: str,
    payload: SubmissionContentRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_team_member(services, submission_id, caller)
    submission = services.submissions.update_submission_content(submission_id, payload.content)
    return to_json_ready(submission)


@router.post("/submissions/{submission_id}/files")
async def upload_submission_files(
    submission_id: str,
    file_type: str = Form(...),
    files: List[UploadFile] = File(...),
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_team_member(services, submission_id, caller)
    uploads = [(f.filename or "upload", await f.read()) for f in files]
    return to_json_ready(services.submissions.upload_files(submission_id, uploads, file_type))


@router.post("/submissions/{submission_id}/submit")
def submit_submission(
    submission_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_team_member(services, submission_id, caller)
    return to_json_ready(services.submissions.submit_submission(submission_id))


@router.put("/submissions/{submission_id}/status")
def update_submission_status(
    submission_id: str,
    payload: SubmissionStatusRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    submission = services.collections.submissions.require(submission_id)
    _require_organizer(services, submission.event_id, caller)
    updated = services.submissions.update_submission_status(submission_id, payload.status)
    return to_json_ready(updated)


@router.delete("/submissions/{submission_id}", response_model=StatusResponse)
def delete_submission(
    submission_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_team_member(services, submission_id, caller)
    services.submissions.delete_submission(submission_id)
    return StatusResponse()


@router.get("/events/{event_id}/submissions")
def get_event_submissions(
    event_id: str,
    status: Optional[SubmissionStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    services: Services = Depends(get_services),
):
    if status is not None:
        return to_json_ready(services.submissions.get_event_submissions(event_id, status))
    return to_json_ready(services.submissions.get_submissions_paginated(event_id, limit, offset))


# Judging


@router.post("/events/{event_id}/judges", status_code=201)
def assign_judge(
    event_id: str,
    payload: AssignJudgeRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_organizer(services, event_id, caller)
    assignment = services.judging.assign_judge(
        event_id, payload.judge_id, caller, payload.role, payload.permissions
    )
    return to_json_ready(assignment)


@router.delete("/events/{event_id}/judges/{judge_id}")
def remove_judge(
    event_id: str,
    judge_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_organizer(services, event_id, caller)
    return to_json_ready(services.judging.remove_judge(event_id, judge_id))


@router.get("/events/{event_id}/judges")
def get_event_judges(event_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.judging.get_event_judges(event_id))


@router.get("/events/{event_id}/judging-queue")
def get_submissions_for_judging(
    event_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.judging.get_submissions_for_judging(event_id, caller))


@router.post("/submissions/{submission_id}/scores")
def score_submission(
    submission_id: str,
    payload: ScoreRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    score = services.judging.score_submission(
        submission_id, caller, payload.scores, payload.comments, payload.rubric_id
    )
    return to_json_ready(score)


@router.get("/submissions/{submission_id}/scores")
def get_submission_scores(submission_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.judging.get_submission_scores(submission_id))


@router.get("/submissions/{submission_id}/aggregate")
def get_submission_aggregate(submission_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.judging.calculate_submission_aggregation(submission_id))


@router.post("/submissions/{submission_id}/judge-comments", status_code=201)
def create_judge_comment(
    submission_id: str,
    payload: JudgeCommentRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    comment = services.judging.create_judge_comment(
        submission_id,
        caller,
        payload.content,
        comment_type=payload.comment_type,
        parent_comment_id=payload.parent_comment_id,
        is_private=payload.is_private,
    )
    return to_json_ready(comment)


@router.get("/submissions/{submission_id}/judge-comments")
def get_judge_comments(submission_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.judging.get_submission_comments(submission_id))


@router.get("/events/{event_id}/scoring-stats")
def get_scoring_stats(event_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.judging.get_event_scoring_stats(event_id))


# Rubrics


@router.post("/rubrics", status_code=201)
def create_rubric(
    payload: CreateRubricRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    criteria = [ScoringCriterion(**c.model_dump()) for c in payload.criteria]
    rubric = services.judging.create_scoring_rubric(
        payload.name,
        payload.description,
        criteria,
        caller,
        event_id=payload.event_id,
        group_id=payload.group_id,
        is_template=payload.is_template,
    )
    return to_json_ready(rubric)


@router.get("/rubrics/{rubric_id}")
def get_rubric(rubric_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.collections.rubrics.require(rubric_id))


@router.get("/events/{event_id}/rubric")
def get_event_rubric(event_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.judging.get_event_rubric(event_id))


# Leaderboards


@router.get("/events/{event_id}/leaderboard")
def get_leaderboard(
    event_id: str,
    min_score: Optional[float] = Query(None),
    max_score: Optional[float] = Query(None),
    min_submissions: Optional[int] = Query(None, ge=0),
    team_ids: Optional[str] = Query(None, description="Comma-separated team ids"),
    top_n: Optional[int] = Query(None, ge=1),
    sort_by: Optional[LeaderboardSortField] = Query(None),
    ascending: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1),
    offset: Optional[int] = Query(None, ge=0),
    services: Services = Depends(get_services),
):
    leaderboard_filter = LeaderboardFilter(
        min_score=min_score,
        max_score=max_score,
        min_submissions=min_submissions,
        team_ids=[t for t in team_ids.split(",") if t] if team_ids else None,
        top_n=top_n,
    )
    sort = LeaderboardSort(field=sort_by, ascending=ascending) if sort_by else None
    if leaderboard_filter.is_empty and sort is None and limit is None and offset is None:
        leaderboard = services.leaderboards.get_latest_leaderboard(event_id)
        if leaderboard is None:
            leaderboard = services.leaderboards.calculate_event_leaderboard(event_id)
        return to_json_ready(leaderboard)
    leaderboard = services.leaderboards.get_filtered_leaderboard(
        event_id, leaderboard_filter, sort, limit=limit, offset=offset
    )
    return to_json_ready(leaderboard)


@router.get("/events/{event_id}/leaderboard/individual")
def get_individual_leaderboard(event_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.leaderboards.calculate_individual_leaderboard(event_id))


@router.post("/events/{event_id}/leaderboard/publish")
def publish_leaderboard(
    event_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    event = _require_organizer(services, event_id, caller)
    leaderboard = services.leaderboards.publish_leaderboard(event_id)
    services.integrations.announce_leaderboard(event, leaderboard)
    return to_json_ready(leaderboard)


@router.post("/events/{event_id}/results")
def announce_results(
    event_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    event = _require_organizer(services, event_id, caller)
    leaderboard = services.leaderboards.announce_results(event_id)
    services.integrations.announce_results(event, leaderboard)
    return to_json_ready(leaderboard)


@router.get("/teams/{team_id}/score-history")
def get_team_score_history(
    team_id: str,
    limit: Optional[int] = Query(None, ge=1),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.leaderboards.get_team_score_history(team_id, limit=limit))


@router.get("/teams/{team_id}/score-trend")
def get_team_score_trend(
    team_id: str,
    period_days: Optional[int] = Query(None, ge=1),
    data_points: Optional[int] = Query(None, ge=1),
    services: Services = Depends(get_services),
):
    period = timedelta(days=period_days) if period_days else None
    trend = services.leaderboards.get_team_score_trend(team_id, period, data_points)
    return to_json_ready(trend)


# Notifications


@router.get("/notifications")
def get_notifications(
    limit: int = Query(50, ge=1, le=200),
    unread_only: bool = Query(False),
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    if notification_type is not None:
        found = services.notifications.get_notifications_by_type(caller, notification_type)
        return to_json_ready(found[:limit])
    found = services.notifications.get_member_notifications(caller, limit, unread_only)
    return to_json_ready(found)


@router.get("/notifications/unread-count", response_model=CountResponse)
def get_unread_count(
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return CountResponse(count=services.notifications.get_unread_count(caller))


def _require_recipient(services: Services, notification_id: str, member_id: str) -> None:
    notification = services.collections.notifications.require(notification_id)
    if notification.recipient_id != member_id:
        raise AuthorizationError("Notification belongs to another member")


@router.post("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_recipient(services, notification_id, caller)
    return to_json_ready(services.notifications.mark_as_read(notification_id))


@router.post("/notifications/read-all", response_model=CountResponse)
def mark_all_notifications_read(
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return CountResponse(count=services.notifications.mark_all_as_read(caller))


@router.delete("/notifications/{notification_id}", response_model=StatusResponse)
def delete_notification(
    notification_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_recipient(services, notification_id, caller)
    services.notifications.delete_notification(notification_id)
    return StatusResponse()


@router.get("/notification-preferences")
def get_notification_preferences(
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.notifications.get_preferences(caller))


@router.put("/notification-preferences")
def save_notification_preferences(
    payload: NotificationPreferencesRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    preferences = NotificationPreferences(member_id=caller, **payload.model_dump())
    return to_json_ready(services.notifications.save_preferences(preferences))


# Integrations


@router.get("/groups/{group_id}/integrations")
def get_integrations(
    group_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    return {
        "integrations": to_json_ready(services.integrations.get_group_integrations(group_id)),
        "statuses": to_json_ready(services.integrations.get_all_statuses(group_id)),
    }


@router.put("/groups/{group_id}/integrations/{integration_type}")
def enable_integration(
    group_id: str,
    integration_type: IntegrationType,
    payload: IntegrationConfigRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    integration = services.integrations.enable_integration(
        group_id,
        integration_type,
        payload.configuration,
        channel_mappings=payload.channel_mappings,
        name=payload.name,
        actor_id=caller,
    )
    return to_json_ready(integration)


@router.patch("/groups/{group_id}/integrations/{integration_type}")
def update_integration(
    group_id: str,
    integration_type: IntegrationType,
    payload: IntegrationConfigRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    integration = services.integrations.update_integration_config(
        group_id,
        integration_type,
        payload.configuration,
        channel_mappings=payload.channel_mappings,
        actor_id=caller,
    )
    return to_json_ready(integration)


@router.delete("/groups/{group_id}/integrations/{integration_type}")
def disable_integration(
    group_id: str,
    integration_type: IntegrationType,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    integration = services.integrations.disable_integration(
        group_id, integration_type, actor_id=caller
    )
    return to_json_ready(integration)


@router.post("/groups/{group_id}/integrations/{integration_type}/test")
def test_integration(
    group_id: str,
    integration_type: IntegrationType,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    ok = services.integrations.test_integration(group_id, integration_type)
    return {"ok": ok, "status": services.integrations.get_integration_status(group_id, integration_type)}


@router.post("/groups/{group_id}/integrations/messages", status_code=202)
def queue_integration_message(
    group_id: str,
    payload: IntegrationMessageRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    delivery = services.integrations.queue_group_message(
        group_id, IntegrationMessage(title=payload.title, text=payload.text)
    )
    return {"deliveryId": delivery.id}


@router.post("/groups/{group_id}/integrations/calendar-events")
def send_calendar_event(
    group_id: str,
    payload: CalendarEventRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    event = CalendarEvent(**payload.model_dump())
    return services.integrations.send_calendar_event(group_id, event)


# Moderation


@router.post("/reports", status_code=201)
def report_content(
    payload: ReportContentRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    report = services.moderation.report_content(
        caller, payload.content_id, payload.content_type, payload.reason, payload.description
    )
    return to_json_ready(report)


@router.get("/groups/{group_id}/reports")
def get_group_reports(
    group_id: str,
    status: ReportStatus = Query(ReportStatus.PENDING),
    limit: Optional[int] = Query(None, ge=1),
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    reports = services.moderation.get_reports_by_status(status, group_id=group_id, limit=limit)
    return to_json_ready(reports)


@router.post("/reports/{report_id}/review")
def review_report(
    report_id: str,
    payload: ReviewReportRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    report = services.moderation.review_report(
        report_id, caller, payload.status, payload.review_notes
    )
    return to_json_ready(report)


@router.post("/moderation/actions", status_code=201)
def take_moderation_action(
    payload: ModerationActionRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    action = services.moderation.take_moderation_action(
        caller,
        payload.group_id,
        payload.target_id,
        payload.target_type,
        payload.action_type,
        reason=payload.reason,
        notes=payload.notes,
        report_id=payload.report_id,
        expires_at=payload.expires_at,
    )
    return to_json_ready(action)


@router.post("/moderation/actions/{action_id}/reverse")
def reverse_moderation_action(
    action_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.moderation.reverse_moderation_action(action_id, caller))


@router.get("/moderation/users/{user_id}/restrictions")
def get_user_restrictions(user_id: str, services: Services = Depends(get_services)):
    return {
        "restricted": services.moderation.is_user_restricted(user_id),
        "restrictions": to_json_ready(services.moderation.get_user_restrictions(user_id)),
    }


@router.get("/groups/{group_id}/moderation/stats")
def get_moderation_statistics(
    group_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    return services.moderation.get_moderation_statistics(group_id)


# Posts


@router.post("/groups/{group_id}/posts", status_code=201)
def create_post(
    group_id: str,
    payload: CreatePostRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    post = services.posts.create_post(group_id, caller, payload.content, payload.media_urls)
    return to_json_ready(post)


@router.get("/groups/{group_id}/posts")
def get_group_posts(
    group_id: str,
    limit: int = Query(20, ge=1, le=100),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.posts.get_group_posts(group_id, limit))


@router.patch("/posts/{post_id}")
def update_post(
    post_id: str,
    payload: UpdatePostRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.posts.update_post(post_id, caller, payload.content))


@router.delete("/posts/{post_id}", response_model=StatusResponse)
def delete_post(
    post_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    services.posts.delete_post(post_id, caller)
    return StatusResponse()


@router.post("/posts/{post_id}/like", response_model=LikeResponse)
def like_post(
    post_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return LikeResponse(liked=True, changed=services.posts.like_post(post_id, caller))


@router.delete("/posts/{post_id}/like", response_model=LikeResponse)
def unlike_post(
    post_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return LikeResponse(liked=False, changed=services.posts.unlike_post(post_id, caller))


@router.post("/posts/{post_id}/comments", status_code=201)
def add_comment(
    post_id: str,
    payload: CommentRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    comment = services.posts.add_comment(
        post_id, caller, payload.content, payload.parent_comment_id
    )
    return to_json_ready(comment)


@router.get("/posts/{post_id}/comments")
def get_post_comments(
    post_id: str,
    limit: int = Query(50, ge=1, le=200),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.posts.get_post_comments(post_id, limit))


# Offline sync


@router.get("/offline/pending")
def get_pending_operations(services: Services = Depends(get_services)):
    return to_json_ready(services.offline.get_pending_operations())


@router.post("/offline/sync")
def sync_offline_operations(
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return services.offline.sync_pending_operations().as_dict()


# Recognition


def _require_self(caller: str, member_id: str) -> None:
    if caller != member_id:
        raise AuthorizationError("Members can only manage their own recognition and consent")


@router.post("/badges", status_code=201)
def create_badge(
    payload: CreateBadgeRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, payload.group_id, caller)
    badge = services.badges.create_badge(
        payload.name,
        payload.description,
        payload.category,
        payload.rarity,
        payload.point_value,
        payload.criteria,
        payload.icon_url,
        payload.badge_id,
    )
    return to_json_ready(badge)


@router.get("/badges")
def get_badges(
    include_inactive: bool = Query(False), services: Services = Depends(get_services)
):
    return to_json_ready(services.badges.get_badges(active_only=not include_inactive))


@router.post("/badges/{badge_id}/awards", status_code=201)
def award_badge(
    badge_id: str,
    payload: AwardBadgeRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, payload.group_id, caller)
    if not services.groups.is_group_member(payload.group_id, payload.member_id):
        raise AuthorizationError("Badges can only be awarded to members of the group")
    awarded = services.badges.award_badge(
        payload.member_id,
        badge_id,
        event_id=payload.event_id,
        submission_id=payload.submission_id,
        metadata=payload.metadata,
    )
    return to_json_ready(awarded)


@router.get("/members/{member_id}/badges")
def get_member_badges(member_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.badges.get_member_badges_with_details(member_id))


@router.patch("/members/{member_id}/badges/{badge_id}")
def set_badge_visibility(
    member_id: str,
    badge_id: str,
    payload: BadgeVisibilityRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_self(caller, member_id)
    return to_json_ready(
        services.badges.set_badge_visibility(member_id, badge_id, payload.is_visible)
    )


@router.get("/members/{member_id}/points")
def get_member_points(member_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.badges.get_member_points(member_id))


@router.get("/groups/{group_id}/points-leaderboard")
def get_points_leaderboard(
    group_id: str,
    limit: int = Query(50, ge=1, le=500),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.badges.get_points_leaderboard(group_id, limit))


@router.post("/members/{member_id}/activity")
def record_activity(
    member_id: str,
    payload: ActivityRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_self(caller, member_id)
    streak = services.badges.record_activity(
        member_id, payload.streak_type, payload.activity_date
    )
    return to_json_ready(streak)


@router.get("/members/{member_id}/streaks")
def get_member_streaks(member_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.badges.get_member_streaks(member_id))


@router.post("/milestones", status_code=201)
def create_milestone(
    payload: CreateMilestoneRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, payload.group_id, caller)
    milestone = services.badges.create_milestone(
        payload.name,
        payload.description,
        payload.milestone_type,
        payload.target_value,
        payload.point_reward,
        payload.badge_id,
    )
    return to_json_ready(milestone)


@router.get("/milestones")
def get_milestones(services: Services = Depends(get_services)):
    return to_json_ready(services.badges.get_milestones())


@router.get("/members/{member_id}/milestones")
def get_member_milestones(member_id: str, services: Services = Depends(get_services)):
    return to_json_ready(services.badges.get_member_milestones(member_id))


@router.post("/members/{member_id}/milestones/refresh")
def refresh_member_milestones(
    member_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_self(caller, member_id)
    completed = services.badges.refresh_member_milestones(member_id)
    return {"completed": to_json_ready(completed)}


# Analytics


@router.post("/groups/{group_id}/analytics", status_code=201)
def generate_group_metrics(
    group_id: str,
    payload: AnalyticsPeriodRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    snapshot = services.analytics.generate_metrics(
        group_id, payload.start, payload.end, payload.event_id
    )
    return to_json_ready(snapshot)


@router.get("/groups/{group_id}/analytics")
def get_group_metrics_history(
    group_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    return to_json_ready(services.analytics.get_historical_metrics(group_id))


@router.get("/groups/{group_id}/analytics/trends")
def get_group_trends(
    group_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    return services.analytics.calculate_trends(group_id)


@router.post("/analytics/reports", status_code=201)
def generate_report(
    payload: AnalyticsReportRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    for group_id in payload.group_ids:
        _require_admin(services, group_id, caller)
    report = services.analytics.generate_report(
        payload.title,
        payload.description,
        payload.group_ids,
        caller,
        payload.start,
        payload.end,
    )
    return to_json_ready(report)


@router.get("/analytics/reports")
def get_my_reports(
    limit: int = Query(50, ge=1, le=200),
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    return to_json_ready(services.analytics.get_reports(caller, limit))


# Consent


@router.get("/members/{member_id}/consents")
def get_consents(
    member_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_self(caller, member_id)
    return {
        "status": services.consent.get_consent_status(member_id),
        "consents": to_json_ready(services.consent.get_member_consents(member_id)),
    }


@router.post("/members/{member_id}/consents", status_code=201)
def grant_consent(
    member_id: str,
    payload: GrantConsentRequest,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_self(caller, member_id)
    consent = services.consent.grant_consent(
        member_id,
        payload.consent_type,
        payload.purpose,
        payload.description,
        payload.expires_at,
        payload.metadata,
    )
    return to_json_ready(consent)


@router.delete("/members/{member_id}/consents/{consent_type}")
def revoke_consent(
    member_id: str,
    consent_type: ConsentType,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_self(caller, member_id)
    revoked = services.consent.revoke_consent(member_id, consent_type)
    return {"revoked": len(revoked)}


@router.get("/members/{member_id}/export")
def export_member_data(
    member_id: str,
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_self(caller, member_id)
    return services.consent.export_member_data(member_id)


# Admin


@router.get("/admin/logs")
def get_recent_logs(
    group_id: str = Query(...),
    limit: int = Query(100, ge=1, le=1000),
    level: str = Query("INFO"),
    caller: str = Depends(get_current_member_id),
    services: Services = Depends(get_services),
):
    _require_admin(services, group_id, caller)
    entries = get_recent_log_handler().recent(limit=limit, min_level=level)
    return {"logs": [e.as_dict() for e in entries]}

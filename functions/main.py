# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Cloud functions for the Ngage backend - leaderboard refresh, deadline
# enforcement and callable endpoints for mobile clients.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
from typing import Any, Dict, Optional

# Third-party library imports
from firebase_admin import initialize_app
from firebase_functions import https_fn, logger, options, scheduler_fn
from firebase_functions.firestore_fn import (
    on_document_written,
    Event,
    Change,
    DocumentSnapshot,
)

# Local application imports
from ngage.db import FirestoreDbClient
from ngage.dependencies import (
    Services,
    build_services,
    get_queue_client,
    get_storage_client,
)
from ngage.errors import ErrorType, NgageError, NotFoundError, OperationError
from ngage.judging import RANKED_STATUSES
from ngage_shared.firebase_constants import SCORES_COLLECTION, SUBMISSIONS_COLLECTION
from ngage_shared.json_utils import to_json_ready
from ngage_shared.types import ContentType, ReportReason

MAX_REPORT_DESCRIPTION_LENGTH = 1000

ERROR_CODES = {
    ErrorType.AUTHENTICATION: https_fn.FunctionsErrorCode.UNAUTHENTICATED,
    ErrorType.AUTHORIZATION: https_fn.FunctionsErrorCode.PERMISSION_DENIED,
    ErrorType.VALIDATION: https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
    ErrorType.NETWORK: https_fn.FunctionsErrorCode.UNAVAILABLE,
    ErrorType.DATABASE: https_fn.FunctionsErrorCode.UNAVAILABLE,
    ErrorType.RATE_LIMIT: https_fn.FunctionsErrorCode.RESOURCE_EXHAUSTED,
}

initialize_app()

_services: Optional[Services] = None


def _get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(
            FirestoreDbClient(), get_storage_client(), get_queue_client()
        )
    return _services


def _to_https_error(error: NgageError) -> https_fn.HttpsError:
    if isinstance(error, NotFoundError):
        code = https_fn.FunctionsErrorCode.NOT_FOUND
    elif isinstance(error, OperationError):
        code = https_fn.FunctionsErrorCode.FAILED_PRECONDITION
    else:
        code = ERROR_CODES.get(error.error_type, https_fn.FunctionsErrorCode.INTERNAL)
    return https_fn.HttpsError(code, error.user_message)


def _require_param(data: Dict[str, Any], name: str) -> Any:
    value = data.get(name)
    if not value:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            f"Must specify {name} parameter.",
        )
    return value


def _acting_member_id(req: https_fn.CallableRequest, services: Services, name: str) -> str:
    """
    The signed-in user's current member profile. Unauthenticated calls
    (emulator, trusted server-side callers) name the member in the payload.
    """
    if req.auth is None:
        return _require_param(req.data, name)
    member = services.members.get_current_member(req.auth.uid)
    if member is None:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.FAILED_PRECONDITION,
            "No member profile is linked to the signed-in user.",
        )
    return member.id


def _snapshot_dict(snapshot: Optional[DocumentSnapshot]) -> Dict[str, Any]:
    if snapshot is None or not snapshot.exists:
        return {}
    return snapshot.to_dict() or {}


def refresh_leaderboard(event_id: str) -> bool:
    """Republishes an event leaderboard; failures are logged, not raised."""
    try:
        _get_services().leaderboards.publish_leaderboard(event_id)
    except NgageError as e:
        logger.error(f"Leaderboard refresh failed for event {event_id}: {e}")
        return False
    logger.info(f"Leaderboard refreshed for event {event_id}")
    return True


def submission_affects_ranking(before: Dict[str, Any], after: Dict[str, Any]) -> bool:
    ranked = {status.value for status in RANKED_STATUSES}
    was_ranked = before.get("status") in ranked
    is_ranked = after.get("status") in ranked
    return was_ranked != is_ranked


@on_document_written(document=SCORES_COLLECTION + "/{scoreId}")
def on_score_written(event: Event[Change[DocumentSnapshot]]) -> None:
    """
    Recomputes and publishes the event leaderboard after any score write.
    """
    before = _snapshot_dict(event.data.before)
    after = _snapshot_dict(event.data.after)
    event_id = after.get("eventId") or before.get("eventId")
    if not event_id:
        logger.warning(f"Score {event.params['scoreId']} has no eventId; skipping")
        return
    refresh_leaderboard(event_id)


@on_document_written(document=SUBMISSIONS_COLLECTION + "/{submissionId}")
def on_submission_written(event: Event[Change[DocumentSnapshot]]) -> None:
    """
    Republishes the leaderboard when a submission enters or leaves a
    ranked status.
    """
    before = _snapshot_dict(event.data.before)
    after = _snapshot_dict(event.data.after)
    if not submission_affects_ranking(before, after):
        return
    event_id = after.get("eventId") or before.get("eventId")
    if event_id:
        refresh_leaderboard(event_id)


def run_deadline_check() -> dict:
    summary = _get_services().deadlines.check_all_deadlines()
    logger.info(f"Deadline check complete: {summary.as_dict()}")
    return summary.as_dict()


@scheduler_fn.on_schedule(schedule="every 1 minutes", memory=options.MemoryOption.MB_512)
def enforce_deadlines(event: scheduler_fn.ScheduledEvent) -> None:
    """Sends due reminders and closes submissions whose deadline has passed."""
    run_deadline_check()


@https_fn.on_call(memory=options.MemoryOption.MB_512)
def submit_score(req: https_fn.CallableRequest) -> dict:
    """
    Scores a submission for the calling judge.

    Args:
        req (https_fn.CallableRequest): The request, containing submission_id,
            scores and optionally comments and rubric_id. The judge is the
            signed-in user's member profile, or judge_id when unauthenticated.

    Returns:
        The stored score in camelCase form.
    """
    submission_id = _require_param(req.data, "submission_id")
    services = _get_services()
    judge_id = _acting_member_id(req, services, "judge_id")
    scores = req.data.get("scores")
    if not isinstance(scores, dict) or not scores:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "scores must be a non-empty object.",
        )

    try:
        score = services.judging.score_submission(
            submission_id,
            judge_id,
            scores,
            req.data.get("comments"),
            req.data.get("rubric_id"),
        )
    except NgageError as e:
        raise _to_https_error(e)
    return to_json_ready(score)


@https_fn.on_call(memory=options.MemoryOption.MB_512)
def get_leaderboard(req: https_fn.CallableRequest) -> dict:
    """Returns the published leaderboard of an event, computing it if none exists."""
    event_id = _require_param(req.data, "event_id")
    services = _get_services()
    try:
        leaderboard = services.leaderboards.get_latest_leaderboard(event_id)
        if leaderboard is None:
            services.collections.events.require(event_id)
            leaderboard = services.leaderboards.calculate_event_leaderboard(event_id)
    except NgageError as e:
        raise _to_https_error(e)
    return to_json_ready(leaderboard)


@https_fn.on_call(memory=options.MemoryOption.MB_512)
def report_content(req: https_fn.CallableRequest) -> dict:
    """Files a content report for the group moderators."""
    services = _get_services()
    reporter_id = _acting_member_id(req, services, "reporter_id")
    content_id = _require_param(req.data, "content_id")
    description = req.data.get("description")
    try:
        content_type = ContentType(_require_param(req.data, "content_type"))
        reason = ReportReason(_require_param(req.data, "reason"))
    except ValueError:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Invalid content_type or reason.",
        )
    if description and len(description) > MAX_REPORT_DESCRIPTION_LENGTH:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Description exceeds max length.",
        )

    try:
        report = services.moderation.report_content(
            reporter_id, content_id, content_type, reason, description
        )
    except NgageError as e:
        raise _to_https_error(e)
    return to_json_ready(report)

"""
Dependency wiring shared by the FastAPI app, the worker and Cloud Functions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import firebase_admin

from ngage.analytics import AnalyticsService
from ngage.badges import BadgeService
from ngage.config import get_settings
from ngage.consent import ConsentService
from ngage.db import DbClient, FirestoreDbClient, InMemoryDbClient
from ngage.deadlines import DeadlineService
from ngage.events import EventService
from ngage.groups import GroupService
from ngage.integrations import DeliveryService, IntegrationService
from ngage.judging import JudgingService
from ngage.leaderboard import LeaderboardService
from ngage.members import MemberService
from ngage.moderation import ModerationService
from ngage.notifications import NotificationService
from ngage.offline import InMemoryOfflineStore, OfflineStore, OfflineSyncService, SqlOfflineStore
from ngage.posts import PostService
from ngage.queue import DeliveryQueue, InMemoryDeliveryQueue, RedisDeliveryQueue
from ngage.repositories import Collections
from ngage.storage import FirebaseStorageClient, InMemoryStorageClient, StorageClient
from ngage.submissions import SubmissionService
from ngage.teams import TeamService
from ngage_shared.models import utc_now

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_queue_client: DeliveryQueue | None = None
_offline_store: OfflineStore | None = None
_services: "Services | None" = None


@dataclass
class Services:
    collections: Collections
    members: MemberService
    groups: GroupService
    teams: TeamService
    events: EventService
    submissions: SubmissionService
    judging: JudgingService
    notifications: NotificationService
    leaderboards: LeaderboardService
    deadlines: DeadlineService
    integrations: IntegrationService
    deliveries: DeliveryService
    moderation: ModerationService
    posts: PostService
    offline: OfflineSyncService
    badges: BadgeService
    analytics: AnalyticsService
    consent: ConsentService


def build_services(
    db: DbClient,
    storage: StorageClient,
    queue: DeliveryQueue,
    offline_store: OfflineStore | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> Services:
    """Wires every service over one set of backends."""
    settings = get_settings()
    c = Collections(db)
    groups = GroupService(c, clock)
    judging = JudgingService(c, clock)
    notifications = NotificationService(c, queue, clock)
    leaderboards = LeaderboardService(c, judging, notifications, clock)
    posts = PostService(c, groups, clock)
    integrations = IntegrationService(c, groups, queue, clock)
    return Services(
        collections=c,
        members=MemberService(c, clock),
        groups=groups,
        teams=TeamService(c, groups, clock),
        events=EventService(c, clock),
        submissions=SubmissionService(c, storage, clock),
        judging=judging,
        notifications=notifications,
        leaderboards=leaderboards,
        deadlines=DeadlineService(c, notifications, clock),
        integrations=integrations,
        deliveries=DeliveryService(
            c,
            integrations,
            ses_sender=settings.ses_sender,
            aws_region=settings.aws_region,
            clock=clock,
        ),
        moderation=ModerationService(c, groups, notifications, clock),
        posts=posts,
        offline=OfflineSyncService(
            offline_store or InMemoryOfflineStore(),
            posts,
            notifications,
            leaderboards,
            judging,
            clock,
        ),
        badges=BadgeService(c, notifications, clock),
        analytics=AnalyticsService(c, clock),
        consent=ConsentService(c, clock),
    )


def _ensure_firebase_app() -> None:
    try:
        firebase_admin.get_app()
    except ValueError:
        settings = get_settings()
        options = {}
        if settings.firebase_project_id:
            options["projectId"] = settings.firebase_project_id
        if settings.firebase_storage_bucket:
            options["storageBucket"] = settings.firebase_storage_bucket
        firebase_admin.initialize_app(options=options or None)


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.firebase_project_id:
        _db_client = InMemoryDbClient()
    else:
        _ensure_firebase_app()
        _db_client = FirestoreDbClient()
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.firebase_storage_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _ensure_firebase_app()
        _storage_client = FirebaseStorageClient(settings.firebase_storage_bucket)
    return _storage_client


def get_queue_client() -> DeliveryQueue:
    """
    Return a singleton queue client for handing deliveries to workers.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _queue_client = RedisDeliveryQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemoryDeliveryQueue()
    return _queue_client


def get_offline_store() -> OfflineStore:
    global _offline_store
    if _offline_store:
        return _offline_store

    settings = get_settings()
    if settings.offline_store_url and not settings.use_in_memory_backends:
        _offline_store = SqlOfflineStore(settings.offline_store_url)
    else:
        _offline_store = InMemoryOfflineStore()
    return _offline_store


def get_services() -> Services:
    global _services
    if _services:
        return _services
    _services = build_services(
        get_db_client(), get_storage_client(), get_queue_client(), get_offline_store()
    )
    return _services

"""
Fixtures shared by the service tests: in-memory backends, a fixed clock and
a seeded competition (group, two teams, one active event).
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from ngage.db import InMemoryDbClient
from ngage.dependencies import build_services
from ngage.offline import InMemoryOfflineStore
from ngage.queue import InMemoryDeliveryQueue
from ngage.storage import InMemoryStorageClient
from ngage_shared.models import Member
from ngage_shared.types import EventType, GroupType

NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_services(clock=None):
    clock = clock or FakeClock()
    db = InMemoryDbClient()
    storage = InMemoryStorageClient()
    queue = InMemoryDeliveryQueue()
    services = build_services(db, storage, queue, InMemoryOfflineStore(), clock=clock)
    return SimpleNamespace(
        services=services, db=db, storage=storage, queue=queue, clock=clock
    )


def add_member(services, member_id: str, first_name: str = "Test", last_name: str = "Member"):
    return services.collections.members.save(
        Member(
            id=member_id,
            email=f"{member_id}@example.com",
            first_name=first_name,
            last_name=last_name,
        )
    )


def seed_competition(env, *, deadline_in=timedelta(days=1), duration=timedelta(days=2)):
    """
    admin runs the group; alice leads team A (with bob), carol leads team B
    (with dave). The event is active from now until now + duration.
    """
    s = env.services
    for member_id, first in (
        ("admin", "Ada"),
        ("alice", "Alice"),
        ("bob", "Bob"),
        ("carol", "Carol"),
        ("dave", "Dave"),
        ("judge", "Judy"),
    ):
        add_member(s, member_id, first_name=first)
    group = s.groups.create_group("Engineering", "Company engineers", GroupType.CORPORATE, "admin")
    for member_id in ("alice", "bob", "carol", "dave", "judge"):
        s.groups.add_member_to_group(group.id, member_id)
    team_a = s.teams.create_team(group.id, "Alpha", "First team", "alice", ["bob"])
    team_b = s.teams.create_team(group.id, "Bravo", "Second team", "carol", ["dave"])

    now = env.clock()
    event = s.events.create_event(
        group.id, "Spring Hackathon", "Build something useful", EventType.COMPETITION, "admin"
    )
    s.events.schedule_event(event.id, now, now + duration, now + deadline_in)
    event = s.events.activate_event(event.id)
    return SimpleNamespace(group=group, team_a=team_a, team_b=team_b, event=event)


def submit_for(env, world, team, member_id: str, text: str = "Our entry"):
    s = env.services
    submission = s.submissions.create_submission(
        world.event.id, team.id, member_id, {"text": text}
    )
    return s.submissions.submit_submission(submission.id)

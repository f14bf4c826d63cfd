"""
Group integrations with external platforms (Slack, Microsoft Teams, email,
Google and Microsoft calendars) and delivery of queued outbound messages.

Outbound messages are stored as Delivery documents and their ids pushed to
the delivery queue; the worker calls DeliveryService.deliver for each one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from ngage.errors import (
    AuthorizationError,
    IntegrationError,
    NgageError,
    NotFoundError,
    ValidationError,
)
from ngage.groups import GroupService
from ngage.queue import DeliveryQueue
from ngage.repositories import Collections
from ngage.retry import with_retry
from ngage_shared.leaderboard import Leaderboard
from ngage_shared.models import Delivery, Event, Integration, utc_now
from ngage_shared.types import (
    ConnectionStatus,
    EmailProvider,
    IntegrationStatus,
    IntegrationType,
    NotificationChannel,
    NotificationType,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10

SLACK_API_URL = "https://slack.com/api"
GRAPH_API_URL = "https://graph.microsoft.com/v1.0"
GOOGLE_CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"
SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
MAILGUN_API_URL = "https://api.mailgun.net/v3"

INTEGRATION_CHANNEL = "integration"

CALENDAR_TYPES = (IntegrationType.GOOGLE_CALENDAR, IntegrationType.MICROSOFT_CALENDAR)

REQUIRED_CONFIG_KEYS: Dict[IntegrationType, tuple] = {
    IntegrationType.SLACK: ("accessToken", "defaultChannelId"),
    IntegrationType.MICROSOFT_TEAMS: ("accessToken", "teamId", "defaultChannelId"),
    IntegrationType.EMAIL: ("provider", "fromEmail", "recipientEmails"),
    IntegrationType.GOOGLE_CALENDAR: ("accessToken", "calendarId"),
    IntegrationType.MICROSOFT_CALENDAR: ("accessToken",),
}

EMAIL_PROVIDER_KEYS: Dict[EmailProvider, tuple] = {
    EmailProvider.SENDGRID: ("apiKey",),
    EmailProvider.MAILGUN: ("apiKey", "domain"),
    EmailProvider.SES: (),
}

MEDALS = ("🥇", "🥈", "🥉")


@dataclass
class IntegrationMessage:
    title: str
    text: str
    notification_type: NotificationType = NotificationType.GENERAL
    # Slack block kit sections; other platforms render title and text.
    blocks: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class CalendarEvent:
    title: str
    start: datetime
    end: datetime
    description: str = ""
    location: Optional[str] = None
    attendees: List[str] = field(default_factory=list)


# Message builders


def _header(text: str) -> dict:
    return {"type": "header", "text": {"type": "plain_text", "text": text}}


def _section(text: str) -> dict:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


_DIVIDER = {"type": "divider"}


def _format_datetime(value: datetime) -> str:
    return value.strftime("%d/%m/%Y at %H:%M UTC")


def _standings(leaderboard: Leaderboard, limit: int, unit: str) -> str:
    lines = []
    for entry in leaderboard.entries[:limit]:
        badge = MEDALS[entry.position - 1] if entry.position <= len(MEDALS) else "🏅"
        lines.append(
            f"{badge} *{entry.position}.* {entry.team_name} - {entry.average_score:.1f} {unit}"
        )
    return "\n".join(lines)


def build_event_reminder_message(event: Event) -> IntegrationMessage:
    schedule = []
    if event.start_time:
        schedule.append(f"📅 *Start:* {_format_datetime(event.start_time)}")
    if event.end_time:
        schedule.append(f"🏁 *End:* {_format_datetime(event.end_time)}")
    if event.submission_deadline:
        schedule.append(
            f"⏰ *Submission Deadline:* {_format_datetime(event.submission_deadline)}"
        )
    text = "\n".join([f"*{event.title}*", event.description, *schedule])
    blocks = [
        _header("📢 Event Reminder"),
        _section(f"*{event.title}*\n{event.description}"),
    ]
    if schedule:
        blocks.append(_section("\n".join(schedule)))
    blocks.append(_section(f"_Event Type:_ {event.event_type.value.upper()}"))
    return IntegrationMessage(
        title=f"📢 Event Reminder: {event.title}",
        text=text,
        notification_type=NotificationType.EVENT_REMINDER,
        blocks=blocks,
    )


def build_deadline_alert_message(event: Event, time_remaining: timedelta) -> IntegrationMessage:
    hours = max(int(time_remaining.total_seconds() // 3600), 0)
    minutes = max(int(time_remaining.total_seconds() // 60) % 60, 0)
    remaining = f"{hours}h {minutes}m" if hours else f"{minutes}m"
    text = f"Submissions for *{event.title}* close in {remaining}."
    return IntegrationMessage(
        title=f"⏰ Deadline Alert: {event.title}",
        text=text,
        notification_type=NotificationType.DEADLINE_ALERT,
        blocks=[_header("⏰ Deadline Alert"), _section(text)],
    )


def build_leaderboard_message(event: Event, leaderboard: Leaderboard) -> IntegrationMessage:
    standings = _standings(leaderboard, 5, "pts")
    return IntegrationMessage(
        title=f"📊 Leaderboard Update: {event.title}",
        text=f"*{event.title}* current standings:\n{standings}",
        notification_type=NotificationType.LEADERBOARD_UPDATE,
        blocks=[
            _header("📊 Leaderboard Update"),
            _section(f"*{event.title}*\nCurrent standings:"),
            _DIVIDER,
            _section(standings or "No scored submissions yet."),
        ],
    )


def build_results_message(event: Event, leaderboard: Leaderboard) -> IntegrationMessage:
    standings = _standings(leaderboard, 3, "points")
    return IntegrationMessage(
        title=f"🎉 Results for {event.title}",
        text=f"*{event.title}* results are now available!\n{standings}",
        notification_type=NotificationType.RESULT_ANNOUNCEMENT,
        blocks=[
            _header("🎉 Results Announced!"),
            _section(f"*{event.title}* results are now available!"),
            _DIVIDER,
            _section(f"*🏆 Top Performers:*\n{standings}"),
        ],
    )


# Platform clients


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}


def _channel_for(integration: Integration, message: IntegrationMessage) -> str:
    mapped = integration.channel_mappings.get(message.notification_type.value)
    return mapped or integration.configuration["defaultChannelId"]


def _recipients_for(integration: Integration, message: IntegrationMessage) -> List[str]:
    mapped = integration.channel_mappings.get(message.notification_type.value)
    if mapped:
        return [address.strip() for address in mapped.split(",") if address.strip()]
    return list(integration.configuration["recipientEmails"])


def send_slack_message(integration: Integration, message: IntegrationMessage) -> bool:
    config = integration.configuration
    payload = {
        "channel": _channel_for(integration, message),
        "text": message.title,
        "blocks": message.blocks or [_section(message.text)],
    }
    resp = requests.post(
        f"{SLACK_API_URL}/chat.postMessage",
        headers=_bearer(config["accessToken"]),
        json=payload,
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    if resp.status_code != 200:
        logger.error("Slack returned HTTP %d: %s", resp.status_code, resp.text[:300])
        return False
    return resp.json().get("ok") is True


def send_teams_message(integration: Integration, message: IntegrationMessage) -> bool:
    config = integration.configuration
    channel_id = _channel_for(integration, message)
    payload = {
        "subject": message.title,
        "body": {"contentType": "html", "content": message.text.replace("\n", "<br>")},
    }
    resp = requests.post(
        f"{GRAPH_API_URL}/teams/{config['teamId']}/channels/{channel_id}/messages",
        headers=_bearer(config["accessToken"]),
        json=payload,
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    if resp.status_code != 201:
        logger.error("Teams returned HTTP %d: %s", resp.status_code, resp.text[:300])
    return resp.status_code == 201


def _html(message: IntegrationMessage) -> str:
    return f"<h2>{message.title}</h2><p>{message.text.replace(chr(10), '<br>')}</p>"


def send_sendgrid_email(config: dict, recipients: List[str], message: IntegrationMessage) -> bool:
    payload = {
        "personalizations": [
            {"to": [{"email": r} for r in recipients], "subject": message.title}
        ],
        "from": {"email": config["fromEmail"], "name": config.get("fromName", "Ngage Platform")},
        "content": [{"type": "text/html", "value": _html(message)}],
    }
    resp = requests.post(
        SENDGRID_SEND_URL,
        headers=_bearer(config["apiKey"]),
        json=payload,
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    return resp.status_code == 202


def send_mailgun_email(config: dict, recipients: List[str], message: IntegrationMessage) -> bool:
    resp = requests.post(
        f"{MAILGUN_API_URL}/{config['domain']}/messages",
        auth=("api", config["apiKey"]),
        data={
            "from": config["fromEmail"],
            "to": ",".join(recipients),
            "subject": message.title,
            "html": _html(message),
        },
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    return resp.status_code == 200


def send_ses_email(
    sender: str,
    recipients: List[str],
    message: IntegrationMessage,
    region: Optional[str] = None,
) -> bool:
    client = boto3.client("ses", region_name=region)
    try:
        response = client.send_email(
            Source=sender,
            Destination={"ToAddresses": recipients},
            Message={
                "Subject": {"Data": message.title},
                "Body": {
                    "Text": {"Data": message.text},
                    "Html": {"Data": _html(message)},
                },
            },
        )
    except (BotoCoreError, ClientError) as e:
        raise IntegrationError(f"SES send failed: {e}", service="ses") from e
    return bool(response.get("MessageId"))


def send_email(integration: Integration, message: IntegrationMessage) -> bool:
    config = integration.configuration
    recipients = _recipients_for(integration, message)
    if not recipients:
        return False
    provider = EmailProvider(config["provider"])
    if provider == EmailProvider.SENDGRID:
        return send_sendgrid_email(config, recipients, message)
    if provider == EmailProvider.MAILGUN:
        return send_mailgun_email(config, recipients, message)
    if provider == EmailProvider.SES:
        return send_ses_email(config["fromEmail"], recipients, message, config.get("region"))
    raise IntegrationError(f"Unsupported email provider: {provider}", service="email")


def create_google_calendar_event(integration: Integration, event: CalendarEvent) -> bool:
    config = integration.configuration
    payload = {
        "summary": event.title,
        "description": event.description,
        "start": {"dateTime": event.start.isoformat(), "timeZone": "UTC"},
        "end": {"dateTime": event.end.isoformat(), "timeZone": "UTC"},
        "attendees": [{"email": a} for a in event.attendees],
    }
    if event.location:
        payload["location"] = event.location
    resp = requests.post(
        f"{GOOGLE_CALENDAR_API_URL}/calendars/{config['calendarId']}/events",
        headers=_bearer(config["accessToken"]),
        json=payload,
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    return resp.status_code == 200


def create_microsoft_calendar_event(integration: Integration, event: CalendarEvent) -> bool:
    config = integration.configuration
    payload = {
        "subject": event.title,
        "body": {"contentType": "HTML", "content": event.description},
        "start": {"dateTime": event.start.isoformat(), "timeZone": "UTC"},
        "end": {"dateTime": event.end.isoformat(), "timeZone": "UTC"},
        "attendees": [
            {"emailAddress": {"address": a}, "type": "required"} for a in event.attendees
        ],
    }
    if event.location:
        payload["location"] = {"displayName": event.location}
    resp = requests.post(
        f"{GRAPH_API_URL}/me/events",
        headers=_bearer(config["accessToken"]),
        json=payload,
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    return resp.status_code == 201


def _test_connection(integration: Integration) -> bool:
    config = integration.configuration
    if integration.type == IntegrationType.SLACK:
        resp = requests.post(
            f"{SLACK_API_URL}/auth.test",
            headers=_bearer(config["accessToken"]),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        return resp.status_code == 200 and resp.json().get("ok") is True
    if integration.type in (IntegrationType.MICROSOFT_TEAMS, IntegrationType.MICROSOFT_CALENDAR):
        resp = requests.get(
            f"{GRAPH_API_URL}/me",
            headers=_bearer(config["accessToken"]),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        return resp.status_code == 200
    if integration.type == IntegrationType.GOOGLE_CALENDAR:
        resp = requests.get(
            f"{GOOGLE_CALENDAR_API_URL}/calendars/{config['calendarId']}",
            headers=_bearer(config["accessToken"]),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        return resp.status_code == 200
    return send_email(
        integration,
        IntegrationMessage(
            title="🎉 Ngage Email Integration Test",
            text="Your email integration is configured correctly.",
        ),
    )


_MESSAGE_SENDERS: Dict[IntegrationType, Callable[[Integration, IntegrationMessage], bool]] = {
    IntegrationType.SLACK: send_slack_message,
    IntegrationType.MICROSOFT_TEAMS: send_teams_message,
    IntegrationType.EMAIL: send_email,
}

_CALENDAR_SENDERS: Dict[IntegrationType, Callable[[Integration, CalendarEvent], bool]] = {
    IntegrationType.GOOGLE_CALENDAR: create_google_calendar_event,
    IntegrationType.MICROSOFT_CALENDAR: create_microsoft_calendar_event,
}

_DELIVERY_ERRORS = (NgageError, requests.RequestException, BotoCoreError, ClientError)


def validate_configuration(integration_type: IntegrationType, config: Dict[str, Any]) -> None:
    missing = [k for k in REQUIRED_CONFIG_KEYS[integration_type] if not config.get(k)]
    if integration_type == IntegrationType.EMAIL and config.get("provider"):
        try:
            provider = EmailProvider(config["provider"])
        except ValueError as e:
            raise ValidationError(f"Unknown email provider: {config['provider']}") from e
        if provider not in EMAIL_PROVIDER_KEYS:
            raise ValidationError(f"Unsupported email provider: {provider}")
        missing += [k for k in EMAIL_PROVIDER_KEYS[provider] if not config.get(k)]
    if missing:
        raise ValidationError(
            f"Missing configuration for {integration_type}: {', '.join(missing)}",
            errors=[f"{k} is required" for k in missing],
        )


class IntegrationService:
    def __init__(
        self,
        collections: Collections,
        groups: GroupService,
        queue: DeliveryQueue,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.groups = groups
        self.queue = queue
        self.clock = clock

    @staticmethod
    def integration_id(group_id: str, integration_type: IntegrationType) -> str:
        return f"{group_id}_{IntegrationType(integration_type).value}"

    def _require_admin(self, group_id: str, actor_id: Optional[str]) -> None:
        if actor_id is not None and not self.groups.is_group_admin(group_id, actor_id):
            raise AuthorizationError("Only group admins can manage integrations")

    def get_integration(
        self, group_id: str, integration_type: IntegrationType
    ) -> Optional[Integration]:
        return self.c.integrations.get(self.integration_id(group_id, integration_type))

    def get_group_integrations(self, group_id: str) -> List[Integration]:
        return self.c.integrations.find(("group_id", "==", group_id))

    def enable_integration(
        self,
        group_id: str,
        integration_type: IntegrationType,
        configuration: Dict[str, Any],
        *,
        channel_mappings: Optional[Dict[str, str]] = None,
        name: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Integration:
        integration_type = IntegrationType(integration_type)
        self._require_admin(group_id, actor_id)
        validate_configuration(integration_type, configuration)
        now = self.clock()
        integration = self.get_integration(group_id, integration_type) or Integration(
            id=self.integration_id(group_id, integration_type),
            group_id=group_id,
            type=integration_type,
            name=name or integration_type.value.replace("_", " ").title(),
            created_at=now,
        )
        integration.configuration = dict(configuration)
        if channel_mappings is not None:
            integration.channel_mappings = dict(channel_mappings)
        if name:
            integration.name = name
        integration.is_active = True
        integration.status = IntegrationStatus.PENDING
        integration.last_error = None
        integration.updated_at = now
        self.c.integrations.save(integration)
        logger.info("Integration %s enabled for group %s", integration_type, group_id)
        return integration

    def disable_integration(
        self,
        group_id: str,
        integration_type: IntegrationType,
        *,
        actor_id: Optional[str] = None,
    ) -> Integration:
        self._require_admin(group_id, actor_id)
        integration = self._require(group_id, integration_type)
        integration.is_active = False
        integration.status = IntegrationStatus.INACTIVE
        integration.updated_at = self.clock()
        self.c.integrations.save(integration)
        logger.info("Integration %s disabled for group %s", integration_type, group_id)
        return integration

    def update_integration_config(
        self,
        group_id: str,
        integration_type: IntegrationType,
        configuration: Dict[str, Any],
        *,
        channel_mappings: Optional[Dict[str, str]] = None,
        actor_id: Optional[str] = None,
    ) -> Integration:
        self._require_admin(group_id, actor_id)
        integration = self._require(group_id, integration_type)
        merged = {**integration.configuration, **configuration}
        validate_configuration(integration.type, merged)
        integration.configuration = merged
        if channel_mappings is not None:
            integration.channel_mappings = dict(channel_mappings)
        integration.updated_at = self.clock()
        self.c.integrations.save(integration)
        return integration

    def _require(self, group_id: str, integration_type: IntegrationType) -> Integration:
        integration = self.get_integration(group_id, integration_type)
        if integration is None:
            raise NotFoundError(f"Integration not found: {integration_type} for group {group_id}")
        return integration

    def _record_result(self, integration: Integration, ok: bool, error: Optional[str]) -> None:
        integration.status = IntegrationStatus.ACTIVE if ok else IntegrationStatus.ERROR
        integration.last_error = None if ok else error
        integration.updated_at = self.clock()
        self.c.integrations.save(integration)

    def test_integration(self, group_id: str, integration_type: IntegrationType) -> bool:
        integration = self._require(group_id, integration_type)
        try:
            ok = _test_connection(integration)
            error = None if ok else "Connection test failed"
        except _DELIVERY_ERRORS as e:
            ok, error = False, str(e)
        self._record_result(integration, ok, error)
        logger.info("Integration %s test result for group %s: %s", integration_type, group_id, ok)
        return ok

    def get_integration_status(self, group_id: str, integration_type: str) -> ConnectionStatus:
        try:
            integration_type = IntegrationType(integration_type)
        except ValueError:
            return ConnectionStatus.NOT_SUPPORTED
        integration = self.get_integration(group_id, integration_type)
        if integration is None or not integration.is_active:
            return ConnectionStatus.DISABLED
        if integration.status == IntegrationStatus.ACTIVE:
            return ConnectionStatus.CONNECTED
        return ConnectionStatus.DISCONNECTED

    def get_all_statuses(self, group_id: str) -> Dict[str, ConnectionStatus]:
        return {t.value: self.get_integration_status(group_id, t) for t in IntegrationType}

    def _enabled(self, group_id: str) -> List[Integration]:
        return [i for i in self.get_group_integrations(group_id) if i.is_active]

    def send_notification(self, group_id: str, message: IntegrationMessage) -> Dict[str, bool]:
        """
        Sends a message through every enabled messaging integration of a group.

        A failing integration is marked with its error and does not stop the
        others. Returns the outcome per integration type.
        """
        results: Dict[str, bool] = {}
        integrations = [i for i in self._enabled(group_id) if i.type in _MESSAGE_SENDERS]
        if not integrations:
            logger.warning("No enabled integrations for group %s", group_id)
            return results
        for integration in integrations:
            sender = _MESSAGE_SENDERS[integration.type]
            try:
                ok = with_retry(
                    lambda: sender(integration, message),
                    context=f"{integration.type} notification",
                )
                error = None if ok else f"{integration.type} rejected the message"
            except _DELIVERY_ERRORS as e:
                ok, error = False, str(e)
            if not ok:
                logger.error(
                    "Failed to send notification via %s for group %s: %s",
                    integration.type,
                    group_id,
                    error,
                )
            self._record_result(integration, ok, error)
            results[integration.type.value] = ok
        return results

    def send_calendar_event(self, group_id: str, event: CalendarEvent) -> Dict[str, bool]:
        results: Dict[str, bool] = {}
        for integration in self._enabled(group_id):
            if integration.type not in CALENDAR_TYPES:
                continue
            creator = _CALENDAR_SENDERS[integration.type]
            try:
                ok = with_retry(
                    lambda: creator(integration, event),
                    context=f"{integration.type} calendar event",
                )
                error = None if ok else "Calendar rejected the event"
            except _DELIVERY_ERRORS as e:
                ok, error = False, str(e)
            if not ok:
                logger.error(
                    "Failed to create calendar event via %s for group %s: %s",
                    integration.type,
                    group_id,
                    error,
                )
            self._record_result(integration, ok, error)
            results[integration.type.value] = ok
        return results

    def queue_group_message(self, group_id: str, message: IntegrationMessage) -> Delivery:
        """Queues a message for the group's integrations; the worker sends it."""
        delivery = Delivery(
            id=self.c.deliveries.new_id(),
            channel=INTEGRATION_CHANNEL,
            recipient_id=None,
            group_id=group_id,
            title=message.title,
            message=message.text,
            notification_type=message.notification_type,
            metadata={"blocks": message.blocks},
            created_at=self.clock(),
        )
        self.c.deliveries.save(delivery)
        self.queue.enqueue(delivery.id)
        return delivery

    def announce_leaderboard(self, event: Event, leaderboard: Leaderboard) -> Delivery:
        return self.queue_group_message(event.group_id, build_leaderboard_message(event, leaderboard))

    def announce_results(self, event: Event, leaderboard: Leaderboard) -> Delivery:
        return self.queue_group_message(event.group_id, build_results_message(event, leaderboard))

    def announce_event(self, event: Event) -> Delivery:
        return self.queue_group_message(event.group_id, build_event_reminder_message(event))


class DeliveryService:
    """Sends queued deliveries: push, member email and group integrations."""

    def __init__(
        self,
        collections: Collections,
        integrations: IntegrationService,
        *,
        ses_sender: Optional[str] = None,
        aws_region: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.integrations = integrations
        self.ses_sender = ses_sender
        self.aws_region = aws_region
        self.clock = clock

    def deliver(self, delivery_id: str) -> bool:
        delivery = self.c.deliveries.get(delivery_id)
        if delivery is None:
            logger.warning("Delivery %s not found; skipping", delivery_id)
            return False
        if delivery.delivered_at is not None:
            return True

        delivery.attempts += 1
        try:
            ok = with_retry(lambda: self._send(delivery), context=f"delivery {delivery.id}")
            error = None if ok else f"{delivery.channel} delivery was rejected"
        except _DELIVERY_ERRORS as e:
            ok, error = False, str(e)

        if ok:
            delivery.delivered_at = self.clock()
            delivery.last_error = None
        else:
            delivery.last_error = error
            logger.error("Delivery %s via %s failed: %s", delivery.id, delivery.channel, error)
        self.c.deliveries.save(delivery)
        return ok

    def _send(self, delivery: Delivery) -> bool:
        message = IntegrationMessage(
            title=delivery.title,
            text=delivery.message,
            notification_type=delivery.notification_type,
            blocks=delivery.metadata.get("blocks") or [],
        )
        if delivery.channel == INTEGRATION_CHANNEL:
            results = self.integrations.send_notification(delivery.group_id, message)
            return any(results.values())
        if delivery.channel == NotificationChannel.PUSH.value:
            return self._send_push(delivery)
        if delivery.channel == NotificationChannel.EMAIL.value:
            return self._send_member_email(delivery, message)
        raise IntegrationError(f"Unknown delivery channel: {delivery.channel}")

    def _send_push(self, delivery: Delivery) -> bool:
        push = messaging.Message(
            notification=messaging.Notification(title=delivery.title, body=delivery.message),
            data={"type": delivery.notification_type.value},
            topic=f"member_{delivery.recipient_id}",
        )
        try:
            messaging.send(push)
        except firebase_exceptions.FirebaseError as e:
            raise IntegrationError(f"Push delivery failed: {e}", service="fcm") from e
        return True

    def _send_member_email(self, delivery: Delivery, message: IntegrationMessage) -> bool:
        if not self.ses_sender:
            raise IntegrationError("Email sender is not configured", service="ses")
        member = self.c.members.require(delivery.recipient_id)
        return send_ses_email(self.ses_sender, [member.email], message, self.aws_region)

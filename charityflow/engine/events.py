"""Event management workflows.

Registration confirmation fans out into:
    - Confirmation email with an iCalendar attachment
    - Reminders at fixed offsets before the start (past offsets skipped)
    - Capacity alerts to staff when a threshold is crossed
    - Waitlist notice for waitlisted registrations
    - Staff notification and staff task
    - Post-event survey, thank-you and digest after the end

Reminder, check-in and post-event survey are single-message operations
invoked by the dispatcher when their task fires (or at the door).

Usage:
    from charityflow.engine.events import EventManagementWorkflow

    workflow = EventManagementWorkflow(services)
    result = workflow.execute_registration_confirmation(event, member, registration)
"""

import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from charityflow.core.logging import get_logger
from charityflow.db.models import (
    Event,
    EventRegistration,
    Member,
    RegistrationStatus,
    RenderedContent,
    ScheduledTask,
    StaffTask,
    TaskPriority,
    WorkflowResult,
)
from charityflow.engine.pipeline import WorkflowRun
from charityflow.engine.services import WorkflowServices

logger = get_logger(__name__)

DEFAULT_INVITE_DURATION = timedelta(hours=2)

REMINDER_TIME_FRAMES = {
    168: "next week",
    24: "tomorrow",
    1: "in 1 hour",
}


@dataclass(frozen=True)
class EventAutomationConfig:
    """Event workflow switches and delays.

    Attributes:
        send_registration_confirmation: Send the confirmation email
        confirmation_delay: Minutes; 0 sends immediately
        send_event_reminders: Schedule reminders
        reminder_schedule: Hours before the event start
        send_capacity_alerts: Alert staff when thresholds are crossed
        capacity_thresholds: Percent of max capacity
        send_waitlist_notifications: Notify waitlisted registrants
        waitlist_delay: Minutes
        send_check_in_notifications: Send the check-in welcome
        check_in_delay: Minutes; 0 sends immediately
        send_post_event_survey: Schedule the survey
        survey_delay: Hours after the event ends
        send_event_thank_you: Schedule the thank-you
        thank_you_delay: Hours after the event ends
        send_event_digest: Schedule the digest
        digest_delay: Days after the event ends
        include_calendar_invite: Attach an .ics file to the confirmation
        create_staff_tasks: Create a staff task per registration
        notify_event_staff: Email staff about registrations and check-ins
    """

    send_registration_confirmation: bool = True
    confirmation_delay: float = 0
    send_event_reminders: bool = True
    reminder_schedule: tuple[int, ...] = (168, 24, 1)
    send_capacity_alerts: bool = True
    capacity_thresholds: tuple[int, ...] = (75, 90, 100)
    send_waitlist_notifications: bool = True
    waitlist_delay: float = 2
    send_check_in_notifications: bool = True
    check_in_delay: float = 0
    send_post_event_survey: bool = True
    survey_delay: float = 24
    send_event_thank_you: bool = True
    thank_you_delay: float = 2
    send_event_digest: bool = True
    digest_delay: float = 7
    include_calendar_invite: bool = True
    create_staff_tasks: bool = True
    notify_event_staff: bool = True


def reminder_task_type(hours_before: int) -> str:
    return f"event_reminder_{hours_before}h"


def reminder_time_frame(reminder_type: str) -> str:
    """'next week', 'tomorrow', 'in 1 hour', or 'soon' for other reminders."""
    match = re.fullmatch(r"event_reminder_(\d+)h", reminder_type)
    if match is None:
        return "soon"
    return REMINDER_TIME_FRAMES.get(int(match.group(1)), "soon")


def crossed_thresholds(event: Event, thresholds: tuple[int, ...]) -> list[int]:
    """Capacity thresholds crossed by the latest registration.

    current_registrations already counts the latest registration; a
    threshold is crossed when the count before it was below the threshold
    and the count now is at or above it.
    """
    if event.max_capacity <= 0:
        return []
    now_pct = event.current_registrations / event.max_capacity * 100
    before_pct = (event.current_registrations - 1) / event.max_capacity * 100
    return [t for t in thresholds if before_pct < t <= now_pct]


def _ics_timestamp(value: datetime) -> str:
    """UTC form for aware datetimes, floating local time for naive ones."""
    if value.tzinfo is None:
        return value.strftime("%Y%m%dT%H%M%S")
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _ics_text(value: Optional[str]) -> str:
    """Escape a TEXT property value."""
    text = (value or "").replace("\\", "\\\\")
    text = text.replace(";", "\\;").replace(",", "\\,")
    return text.replace("\r\n", "\\n").replace("\n", "\\n")


def calendar_invite(event: Event, organization_name: str, organizer_email: str) -> str:
    """iCalendar (RFC 5545) body for an event.

    Events without an end date are given a two hour slot.
    """
    end = event.end_date or event.start_date + DEFAULT_INVITE_DURATION
    domain = organizer_email.split("@")[-1]
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:-//{organization_name}//Event Calendar//EN",
        "BEGIN:VEVENT",
        f"UID:{event.id}@{domain}",
        f"DTSTART:{_ics_timestamp(event.start_date)}",
        f"DTEND:{_ics_timestamp(end)}",
        f"SUMMARY:{_ics_text(event.name)}",
        f"DESCRIPTION:{_ics_text(event.description)}",
        f"LOCATION:{_ics_text(event.location)}",
        f"ORGANIZER:CN={organization_name}:MAILTO:{organizer_email}",
        "STATUS:CONFIRMED",
        "SEQUENCE:0",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"


def invite_attachment(event: Event, organization_name: str, organizer_email: str) -> dict[str, Any]:
    return {
        "filename": re.sub(r"[^a-zA-Z0-9]", "_", event.name) + ".ics",
        "content": calendar_invite(event, organization_name, organizer_email),
        "content_type": "text/calendar",
    }


class EventManagementWorkflow:
    """Registration, reminder, check-in and survey workflows for events."""

    def __init__(
        self,
        services: WorkflowServices,
        config: Optional[EventAutomationConfig] = None,
    ):
        self.services = services
        self.config = config or EventAutomationConfig()

    # =========================================================================
    # REGISTRATION CONFIRMATION
    # =========================================================================

    def execute_registration_confirmation(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
        **overrides: Any,
    ) -> WorkflowResult:
        """Confirm a registration and schedule everything that follows it.

        Args:
            event: Event registered for
            member: Registrant
            registration: The new registration
            **overrides: EventAutomationConfig fields for this run only

        Returns:
            WorkflowResult with reminder, waitlist and post-event tasks
        """
        config = replace(self.config, **overrides) if overrides else self.config
        now = self.services.now()
        variables = self._event_variables(event, registration)

        with WorkflowRun(
            "event_registration", event_id=event.id, member_id=member.id
        ) as run:
            if config.send_registration_confirmation:
                attachments = None
                if config.include_calendar_invite:
                    attachments = [
                        invite_attachment(
                            event,
                            self.services.config.organization_name,
                            self.services.config.staff_email,
                        )
                    ]
                task = run.step(
                    "Failed to send registration confirmation",
                    self._deliver,
                    "registration_confirmation",
                    "event_registration_confirmation",
                    member,
                    variables,
                    timedelta(minutes=config.confirmation_delay),
                    TaskPriority.HIGH,
                    attachments,
                    default=False,
                )
                if task is not False:
                    run.schedule([task] if task else [])
                    run.action("registration_confirmation")

            if config.send_event_reminders:
                run.schedule(self._reminder_tasks(event, member, variables, config, now))
                run.action("event_reminders_scheduled")

            if config.send_capacity_alerts:
                checked = run.step(
                    "Failed to check capacity",
                    self._send_capacity_alerts,
                    event,
                    config,
                    default=False,
                )
                if checked:
                    run.action("capacity_check")

            if (
                registration.status == RegistrationStatus.WAITLISTED
                and config.send_waitlist_notifications
            ):
                task = run.step(
                    "Failed to send waitlist notification",
                    self._deliver,
                    "waitlist_notification",
                    "event_waitlist",
                    member,
                    variables,
                    timedelta(minutes=config.waitlist_delay),
                    TaskPriority.MEDIUM,
                    None,
                    default=False,
                )
                if task is not False:
                    run.schedule([task] if task else [])
                    run.action("waitlist_notification")

            if config.notify_event_staff:
                notified = run.step(
                    "Failed to notify event staff",
                    self._notify_staff,
                    event,
                    member,
                    registration,
                    "new_registration",
                    default=False,
                )
                if notified:
                    run.action("staff_notification")

            if config.create_staff_tasks:
                created = run.step(
                    "Failed to create staff tasks",
                    self._create_staff_task,
                    event,
                    member,
                    registration,
                    default=False,
                )
                if created:
                    run.action("staff_tasks_created")

            post_event = self._post_event_tasks(event, member, variables, config, now)
            if post_event:
                run.schedule(post_event)
                run.action("post_event_workflows_scheduled")

        return run.finish()

    # =========================================================================
    # SINGLE-MESSAGE OPERATIONS
    # =========================================================================

    def execute_event_reminder(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
        reminder_type: str,
    ) -> WorkflowResult:
        """Send one reminder now, e.g. when an event_reminder_24h task fires."""
        variables = {
            **self._event_variables(event, registration),
            "time_frame": reminder_time_frame(reminder_type),
        }

        with WorkflowRun("event_reminder", event_id=event.id, member_id=member.id) as run:
            content = self.services.personalizer.render("event_reminder", member, variables)
            sent = run.step(
                "Reminder failed",
                self._send,
                member.email,
                content,
                default=False,
            )
            if sent:
                run.action(f"{reminder_type}_reminder_sent")

        return run.finish()

    def execute_check_in(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
        **overrides: Any,
    ) -> WorkflowResult:
        """Welcome a member at the door and mark the registration checked in."""
        config = replace(self.config, **overrides) if overrides else self.config
        variables = self._event_variables(event, registration)

        with WorkflowRun("event_check_in", event_id=event.id, member_id=member.id) as run:
            if config.send_check_in_notifications:
                task = run.step(
                    "Check-in notification failed",
                    self._deliver,
                    "check_in_notification",
                    "event_check_in",
                    member,
                    variables,
                    timedelta(minutes=config.check_in_delay),
                    TaskPriority.HIGH,
                    None,
                    default=False,
                )
                if task is not False:
                    run.schedule([task] if task else [])
                    run.action("check_in_notification")

            run.step(
                "Failed to update registration status",
                self.services.update_registration,
                registration.id,
                {"status": RegistrationStatus.CHECKED_IN},
                required=True,
            )
            run.action("registration_status_updated")

            if config.notify_event_staff:
                notified = run.step(
                    "Failed to notify event staff",
                    self._notify_staff,
                    event,
                    member,
                    registration,
                    "check_in",
                    default=False,
                )
                if notified:
                    run.action("staff_check_in_notification")

        return run.finish()

    def execute_post_event_survey(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
    ) -> WorkflowResult:
        """Send the feedback survey now."""
        variables = {
            **self._event_variables(event, registration),
            "survey_url": f"{self.services.config.app_url}/survey/event/{event.id}?member={member.id}",
        }

        with WorkflowRun("post_event_survey", event_id=event.id, member_id=member.id) as run:
            if not self.config.send_post_event_survey:
                return run.skip("Post-event surveys disabled")

            content = self.services.personalizer.render("event_post_survey", member, variables)
            sent = run.step(
                "Survey workflow failed",
                self._send,
                member.email,
                content,
                default=False,
            )
            if sent:
                run.action("post_event_survey_sent")

        return run.finish()

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _event_variables(self, event: Event, registration: EventRegistration) -> dict[str, Any]:
        return {
            "event_name": event.name,
            "event_date": event.start_date.strftime("%m/%d/%Y at %I:%M %p"),
            "event_location": event.location or "Location TBD",
            "registration_id": registration.id,
            "portal_url": self.services.portal_url("/portal/events"),
        }

    def _deliver(
        self,
        task_type: str,
        template_id: str,
        member: Member,
        variables: dict[str, Any],
        delay: timedelta,
        priority: TaskPriority,
        attachments: Optional[list[dict[str, Any]]],
    ) -> Optional[ScheduledTask]:
        content = self.services.personalizer.render(template_id, member, variables)
        return self.services.deliver_or_schedule(
            task_type,
            member.email,
            content,
            delay,
            priority,
            data={"member_id": member.id, "registration_id": variables["registration_id"]},
            attachments=attachments,
        )

    def _send(self, recipient: str, content: RenderedContent) -> bool:
        self.services.deliver_or_schedule("send_email", recipient, content, timedelta(0))
        return True

    def _reminder_tasks(
        self,
        event: Event,
        member: Member,
        variables: dict[str, Any],
        config: EventAutomationConfig,
        now: datetime,
    ) -> list[ScheduledTask]:
        tasks = []
        for hours_before in sorted(config.reminder_schedule, reverse=True):
            fire_at = event.start_date - timedelta(hours=hours_before)
            if fire_at <= now:
                logger.debug(
                    f"Skipping past reminder {hours_before}h for event {event.id}",
                    extra={"context": {"event_id": event.id, "fire_at": fire_at}},
                )
                continue
            task_type = reminder_task_type(hours_before)
            content = self.services.personalizer.render(
                "event_reminder",
                member,
                {**variables, "time_frame": reminder_time_frame(task_type)},
            )
            tasks.append(
                ScheduledTask(
                    task_type=task_type,
                    scheduled_for=fire_at,
                    data={
                        "event_id": event.id,
                        "member_id": member.id,
                        "recipient": member.email,
                        "registration_id": variables["registration_id"],
                        "content": content,
                    },
                    priority=TaskPriority.MEDIUM,
                )
            )
        return tasks

    def _post_event_tasks(
        self,
        event: Event,
        member: Member,
        variables: dict[str, Any],
        config: EventAutomationConfig,
        now: datetime,
    ) -> list[ScheduledTask]:
        end = event.effective_end
        planned = []
        if config.send_post_event_survey:
            planned.append(("post_event_survey", None, timedelta(hours=config.survey_delay)))
        if config.send_event_thank_you:
            planned.append(("event_thank_you", "event_thank_you", timedelta(hours=config.thank_you_delay)))
        if config.send_event_digest:
            planned.append(("event_digest", "event_digest", timedelta(days=config.digest_delay)))

        tasks = []
        for task_type, template_id, offset in planned:
            data: dict[str, Any] = {
                "event_id": event.id,
                "member_id": member.id,
                "recipient": member.email,
                "registration_id": variables["registration_id"],
            }
            # The survey renders at fire time through execute_post_event_survey.
            if template_id:
                data["content"] = self.services.personalizer.render(template_id, member, variables)
            tasks.append(
                ScheduledTask(
                    task_type=task_type,
                    scheduled_for=max(end + offset, now),
                    data=data,
                    priority=TaskPriority.LOW,
                )
            )
        return tasks

    def _send_capacity_alerts(self, event: Event, config: EventAutomationConfig) -> bool:
        template = self.services.templates.get("event_capacity_alert")
        percentage = (
            event.current_registrations / event.max_capacity * 100 if event.max_capacity else 0.0
        )
        for threshold in crossed_thresholds(event, config.capacity_thresholds):
            content = self.services.personalizer.personalize_text(
                template.subject,
                template.content,
                {
                    "event_name": event.name,
                    "threshold": threshold,
                    "capacity_percentage": f"{percentage:.1f}",
                },
            )
            self.services.deliver_or_schedule(
                "capacity_alert", self.services.config.staff_email, content, timedelta(0)
            )
            logger.info(
                f"Capacity alert sent for {threshold}% threshold",
                extra={"context": {"event_id": event.id, "threshold": threshold}},
            )
        return True

    def _notify_staff(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
        notification_type: str,
    ) -> bool:
        template = self.services.templates.get("event_staff_notification")
        content = self.services.personalizer.personalize_text(
            template.subject,
            template.content,
            {
                "notification_type": notification_type.replace("_", " ").title(),
                "event_name": event.name,
                "member_name": f"{member.first_name} {member.last_name}",
                "member_email": member.email,
                "registration_id": registration.id,
            },
        )
        self.services.deliver_or_schedule(
            "staff_notification", self.services.config.staff_email, content, timedelta(0)
        )
        return True

    def _create_staff_task(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
    ) -> bool:
        self.services.staff_tasks.create_task(
            StaffTask(
                description=f"Follow up with new registration for {event.name}",
                due_at=self.services.now(),
                member_id=member.id,
                reference_id=registration.id,
            )
        )
        return True

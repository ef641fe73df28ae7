"""Email campaign: schedule, generate content, send in batches, track."""

from __future__ import annotations

import random
import re
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config import DispatchConfig
from ..constants import (
    FLOW_EMAIL_CAMPAIGN,
    NS_CAMPAIGN_CONTENT,
    NS_CAMPAIGNS,
    NS_EMAIL_TRACKING,
    TOPIC_CAMPAIGN_SCHEDULED,
    TOPIC_CONTENT_GENERATED,
    TOPIC_EMAIL_SENT,
    TOPIC_EMAILS_SENT,
)
from ..contracts import (
    CampaignScheduled,
    ContentGenerated,
    EmailSent,
    EmailsSent,
    ErrorResponse,
    GeneratedContent,
    ScheduleCampaignRequest,
    ScheduleCampaignResponse,
)
from ..dispatch import BatchDispatcher, DeliveryClient, DispatchProgress, SimulatedDeliveryClient
from ..ids import generate_instance_id
from ..runtime import ApiRequest, ApiResponse, ApiStepConfig, EventStepConfig, StepContext, StepRegistry
from ..utils.time import isoformat, utc_now, utc_now_iso

CONTENT_VARIATIONS = [
    "Exciting news awaits you!",
    "Don't miss out on this opportunity!",
    "Special offer just for you!",
    "Your exclusive update is here!",
]
PERSONALIZATION_FIELDS = ["firstName", "lastName", "company"]

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9]")


def tracking_key(campaign_id: str, recipient: str) -> str:
    return f"{campaign_id}-{_UNSAFE_KEY_CHARS.sub('-', recipient)}"


class EngagementSimulator:
    """Placeholder for an engagement feed: 60% opens, 30% clicks."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def observe(self) -> Dict[str, Any]:
        now = utc_now()
        opened = self._rng.random() > 0.4
        clicked = self._rng.random() > 0.7
        return {
            "opened": opened,
            "openedAt": isoformat(now + timedelta(seconds=self._rng.random() * 3600)) if opened else None,
            "clicked": clicked,
            "clickedAt": isoformat(now + timedelta(seconds=self._rng.random() * 7200)) if clicked else None,
        }


SCHEDULE_CAMPAIGN = ApiStepConfig(
    name="ScheduleCampaign",
    path="/campaign/schedule",
    method="POST",
    description="Schedules an email campaign for execution",
    emits=[TOPIC_CAMPAIGN_SCHEDULED],
    flows=[FLOW_EMAIL_CAMPAIGN],
    body_schema=ScheduleCampaignRequest,
    response_schema={200: ScheduleCampaignResponse, 400: ErrorResponse},
)

GENERATE_CONTENT = EventStepConfig(
    name="GenerateContent",
    description="Generates personalized email content for campaign",
    subscribes=[TOPIC_CAMPAIGN_SCHEDULED],
    emits=[TOPIC_CONTENT_GENERATED],
    flows=[FLOW_EMAIL_CAMPAIGN],
    input_schema=CampaignScheduled,
)

SEND_EMAILS = EventStepConfig(
    name="SendEmails",
    description="Sends emails with rate limiting and batch processing",
    subscribes=[TOPIC_CONTENT_GENERATED],
    emits=[TOPIC_EMAILS_SENT, TOPIC_EMAIL_SENT],
    flows=[FLOW_EMAIL_CAMPAIGN],
    input_schema=ContentGenerated,
)

TRACK_ENGAGEMENT = EventStepConfig(
    name="TrackEngagement",
    description="Tracks individual email engagement (opens, clicks)",
    subscribes=[TOPIC_EMAIL_SENT],
    emits=[],
    flows=[FLOW_EMAIL_CAMPAIGN],
    input_schema=EmailSent,
)


def register(
    registry: StepRegistry,
    delivery_client: Optional[DeliveryClient] = None,
    settings: Optional[DispatchConfig] = None,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    engagement: Optional[EngagementSimulator] = None,
) -> None:
    """Register the four campaign steps on ``registry``."""
    settings = settings or DispatchConfig()
    delivery_client = delivery_client or SimulatedDeliveryClient(settings.simulated_success_rate)
    engagement = engagement or EngagementSimulator()
    dispatcher_kwargs: Dict[str, Any] = {}
    if sleep is not None:
        dispatcher_kwargs["sleep"] = sleep

    @registry.step(SCHEDULE_CAMPAIGN)
    async def schedule_campaign(request: ApiRequest, ctx: StepContext) -> ApiResponse:
        body: ScheduleCampaignRequest = request.body
        campaign_id = generate_instance_id("campaign")
        scheduled_for = body.scheduled_for or utc_now_iso()
        recipient_count = len(body.recipients)
        ctx.logger.info(
            "Scheduling email campaign",
            campaign_id=campaign_id,
            campaign_name=body.campaign_name,
            recipient_count=recipient_count,
        )

        await ctx.state.set(
            NS_CAMPAIGNS,
            campaign_id,
            {
                "name": body.campaign_name,
                "subject": body.subject,
                "template": body.template,
                "recipients": list(body.recipients),
                "recipientCount": recipient_count,
                "status": "scheduled",
                "createdAt": utc_now_iso(),
                "scheduledFor": scheduled_for,
            },
        )
        await ctx.emit(
            TOPIC_CAMPAIGN_SCHEDULED,
            CampaignScheduled(
                campaign_id=campaign_id,
                campaign_name=body.campaign_name,
                subject=body.subject,
                template=body.template,
                recipients=body.recipients,
                scheduled_for=scheduled_for,
            ),
        )
        ctx.logger.info("Campaign scheduled successfully", campaign_id=campaign_id, recipient_count=recipient_count)

        return ApiResponse(
            status=200,
            body=ScheduleCampaignResponse(
                campaign_id=campaign_id,
                status="scheduled",
                recipient_count=recipient_count,
                message=f'Campaign "{body.campaign_name}" scheduled for {recipient_count} recipients',
            ).to_wire(),
        )

    @registry.step(GENERATE_CONTENT)
    async def generate_content(payload: CampaignScheduled, ctx: StepContext) -> None:
        ctx.logger.info("Generating campaign content", campaign_id=payload.campaign_id, template=payload.template)
        await ctx.state.set(
            NS_CAMPAIGNS,
            payload.campaign_id,
            {
                "status": "generating-content",
                "contentGenerationStartedAt": utc_now_iso(),
            },
        )

        content = GeneratedContent(
            subject=payload.subject,
            body_template=payload.template,
            personalization_fields=list(PERSONALIZATION_FIELDS),
            content_variations=list(CONTENT_VARIATIONS),
            generated_at=utc_now_iso(),
        )
        await ctx.state.set(NS_CAMPAIGN_CONTENT, payload.campaign_id, content.to_wire())
        ctx.logger.info(
            "Content generated successfully",
            campaign_id=payload.campaign_id,
            variations_count=len(content.content_variations),
        )

        await ctx.emit(
            TOPIC_CONTENT_GENERATED,
            ContentGenerated(
                campaign_id=payload.campaign_id,
                campaign_name=payload.campaign_name,
                content=content,
                recipients=payload.recipients,
                scheduled_for=payload.scheduled_for,
            ),
        )

    @registry.step(SEND_EMAILS)
    async def send_emails(payload: ContentGenerated, ctx: StepContext) -> None:
        campaign_id = payload.campaign_id
        total = len(payload.recipients)
        ctx.logger.info("Starting email sending", campaign_id=campaign_id, recipient_count=total)

        await ctx.state.set(
            NS_CAMPAIGNS,
            campaign_id,
            {
                "status": "sending",
                "sendingStartedAt": utc_now_iso(),
                "totalRecipients": total,
                "sentCount": 0,
            },
        )

        async def on_delivered(recipient: str) -> None:
            await ctx.emit(
                TOPIC_EMAIL_SENT,
                EmailSent(
                    campaign_id=campaign_id,
                    recipient=recipient,
                    subject=payload.content.subject,
                    sent_at=utc_now_iso(),
                    status="delivered",
                ),
            )

        async def on_batch_complete(progress: DispatchProgress) -> None:
            await ctx.state.set(
                NS_CAMPAIGNS,
                campaign_id,
                {
                    "status": "sending",
                    "sentCount": progress.sent_count,
                    "failedCount": progress.failed_count,
                    "progress": f"{progress.percent_complete:.2f}",
                },
            )

        dispatcher = BatchDispatcher(
            delivery_client,
            batch_size=settings.batch_size,
            batch_delay=settings.batch_delay_seconds,
            timeout=settings.delivery_timeout_seconds,
            **dispatcher_kwargs,
        )
        result = await dispatcher.dispatch(
            payload.recipients,
            payload.content,
            on_delivered=on_delivered,
            on_batch_complete=on_batch_complete,
        )

        completed_at = utc_now_iso()
        await ctx.state.set(
            NS_CAMPAIGNS,
            campaign_id,
            {
                "status": "completed",
                "sentCount": result.sent_count,
                "failedCount": result.failed_count,
                "totalRecipients": total,
                "successRate": f"{result.success_rate:.2f}",
                "completedAt": completed_at,
            },
        )
        ctx.logger.info(
            "Email campaign completed",
            campaign_id=campaign_id,
            sent_count=result.sent_count,
            failed_count=result.failed_count,
            success_rate=f"{result.success_rate:.2f}%",
        )

        await ctx.emit(
            TOPIC_EMAILS_SENT,
            EmailsSent(
                campaign_id=campaign_id,
                sent_count=result.sent_count,
                failed_count=result.failed_count,
                total_recipients=total,
                success_rate=result.success_rate,
                completed_at=completed_at,
            ),
        )

    @registry.step(TRACK_ENGAGEMENT)
    async def track_engagement(payload: EmailSent, ctx: StepContext) -> None:
        observed = engagement.observe()
        record = {
            "recipient": payload.recipient,
            "subject": payload.subject,
            "sentAt": payload.sent_at,
            "status": payload.status,
            **observed,
            "trackedAt": utc_now_iso(),
        }
        await ctx.state.set(NS_EMAIL_TRACKING, tracking_key(payload.campaign_id, payload.recipient), record)

        if record["opened"]:
            ctx.logger.info(
                "Email opened",
                campaign_id=payload.campaign_id,
                recipient=payload.recipient,
                opened_at=record["openedAt"],
            )
        if record["clicked"]:
            ctx.logger.info(
                "Email link clicked",
                campaign_id=payload.campaign_id,
                recipient=payload.recipient,
                clicked_at=record["clickedAt"],
            )

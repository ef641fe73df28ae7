"""Example scheduling an email campaign and running the maintenance jobs."""

import asyncio

from stepflow import create_runtime


async def main():
    registry = await create_runtime()

    recipients = [f"user{i}@example.com" for i in range(30)]
    response = await registry.invoke_api(
        "ScheduleCampaign",
        {
            "campaignName": "Product update",
            "recipients": recipients,
            "subject": "What's new this month",
            "template": "Hi {{firstName}}, here is the latest from {{company}}.",
        },
    )
    campaign_id = response.body["campaignId"]
    await registry.bus.drain()

    campaign = await registry.state.get("campaigns", campaign_id)
    print(f"Campaign {campaign_id}: {campaign['sentCount']} sent, success rate {campaign['successRate']}%")

    # Scheduled jobs can also be run on demand
    for job in ("DailyReportGenerator", "SystemHealthCheck"):
        await registry.run_cron(job)
    await registry.bus.drain()

    await registry.bus.close()


if __name__ == "__main__":
    asyncio.run(main())

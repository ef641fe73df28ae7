"""Simple example showing a data pipeline run end to end."""

import asyncio

from stepflow import create_runtime


async def main():
    """Run the four pipeline stages for a single fetch request."""
    # Build the runtime and bind every event step to the bus
    registry = await create_runtime()

    # Trigger the first stage like an HTTP client would
    response = await registry.invoke_api("FetchData", {"source": "api.example.com", "batchSize": 25})
    pipeline_id = response.body["pipelineId"]

    # Let the downstream stages finish
    await registry.bus.drain()

    record = await registry.state.get("pipelines", pipeline_id)
    print(f"Pipeline {pipeline_id} finished with status {record['status']}")
    print(f"Stats: {record.get('stats')}")

    await registry.bus.close()


if __name__ == "__main__":
    asyncio.run(main())

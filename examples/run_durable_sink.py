"""
Demo script for the durable (buffer file) sink.

Logs through loguru into buffer files under ./demo-spool and ships them to an
in-memory publisher, with a publisher outage in the middle to show that
nothing is lost.
"""

import asyncio
from pathlib import Path

from loguru import logger

from pubsub_sink import InMemoryPublisher, SinkOptions, create_sink, install


async def main():
    spool = Path("demo-spool")
    spool.mkdir(exist_ok=True)

    publisher = InMemoryPublisher()
    options = SinkOptions(
        project_id="demo-project",
        topic_id="app-logs",
        batch_posting_limit=25,
        buffer_base_filename=str(spool / "buffer"),
        buffer_log_shipping_interval=0.2,
        error_base_filename=str(spool / "errors"),
        error_store_events=True,
        message_attr_fixed={"service": "demo"},
    )
    sink = create_sink(options, publisher)
    handler_id = install(logger, sink, level="INFO")

    async with sink:
        for i in range(100):
            logger.info(f"order {i} accepted")
        await asyncio.sleep(0.5)
        logger.info(f"Delivered so far: {len(publisher.messages)}")

        publisher.fail_with = RuntimeError("simulated outage")
        for i in range(100, 150):
            logger.warning(f"order {i} delayed")
        await asyncio.sleep(0.5)
        logger.info(f"During outage: {len(publisher.messages)} delivered")

        publisher.fail_with = None
        await asyncio.sleep(0.5)

    logger.remove(handler_id)
    logger.info(f"Done: {len(publisher.messages)} messages in {len(publisher.published)} batches")


if __name__ == "__main__":
    asyncio.run(main())

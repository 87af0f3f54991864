"""
Demo script for the periodic batching sink.

Events are kept in memory and flushed every second; the min-value attribute
stamps each batch with its smallest sequence number.
"""

import asyncio

from loguru import logger

from pubsub_sink import InMemoryPublisher, SinkOptions, create_sink, install


async def main():
    publisher = InMemoryPublisher()
    options = SinkOptions(
        project_id="demo-project",
        topic_id="app-logs",
        period=1.0,
        batch_posting_limit=10,
        message_data_to_base64=False,
        event_field_separator="|",
        message_attr_min_value="0#min_seq",
    )
    sink = create_sink(options, publisher)
    handler_id = install(logger, sink)

    async with sink:
        for i in range(35):
            logger.info(f"{1000 + i}|tick")
        await logger.complete()
        await asyncio.sleep(1.5)

    logger.remove(handler_id)
    for _, batch in publisher.published:
        logger.info(f"batch of {len(batch)}: min_seq={batch[0].attributes.get('min_seq')}")


if __name__ == "__main__":
    asyncio.run(main())

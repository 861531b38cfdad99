import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict

import aio_pika
from aio_pika.abc import AbstractIncomingMessage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class RabbitMQManager:
    """
    Durable queue publisher/consumer for agent runs.

    prefetch_count=1 keeps at most one run in flight per consumer, which is
    what serializes agent runs for the same negotiation.
    """

    def __init__(self, rabbitmq_url: str, queue_name: str, reconnect_delay: float = 5):
        self.rabbitmq_url = rabbitmq_url
        self.queue_name = queue_name
        self.reconnect_delay = reconnect_delay
        self.connection = None
        self.channel = None
        self.should_reconnect = True

    async def connect(self):
        """Connect and declare the queue, retrying until stopped"""
        while self.should_reconnect:
            try:
                logger.info(f"Connecting to RabbitMQ queue '{self.queue_name}'")
                self.connection = await aio_pika.connect_robust(
                    self.rabbitmq_url,
                    heartbeat=60,
                    connection_attempts=3,
                    retry_delay=self.reconnect_delay
                )
                self.channel = await self.connection.channel()
                await self.channel.set_qos(prefetch_count=1)

                queue = await self._declare_queue()
                logger.info(
                    f"✅ RabbitMQ ready, '{self.queue_name}' has {queue.declaration_result.message_count} pending runs")
                return

            except Exception as e:
                logger.error(f"❌ RabbitMQ connection failed, retrying in {self.reconnect_delay}s: {e}")
                await asyncio.sleep(self.reconnect_delay)

    async def _declare_queue(self):
        return await self.channel.declare_queue(self.queue_name, durable=True)

    async def disconnect(self):
        logger.info("Disconnecting from RabbitMQ...")
        self.should_reconnect = False

        if self.channel and not self.channel.is_closed:
            await self.channel.close()
        if self.connection and not self.connection.is_closed:
            await self.connection.close()

        logger.info("🔌 Disconnected from RabbitMQ")

    async def publish(self, message: dict):
        if not self.channel or self.channel.is_closed:
            logger.warning("⚠️ Channel closed, reconnecting before publish...")
            await self.connect()

        await self.channel.default_exchange.publish(
            aio_pika.Message(
                body=json.dumps(message).encode("utf-8"),
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT
            ),
            routing_key=self.queue_name,
        )

        logger.info(f"📤 Message sent to queue: {self.queue_name}")

    async def handle_message(self, message: AbstractIncomingMessage, handler: MessageHandler):
        """
        Decode one delivery and pass the payload to the handler.

        The message is acked once the handler returns. An undecodable payload,
        or an exception raised by the handler, rejects it without requeue.
        The queued-run processor in main.py reports run failures through its
        return value, so a failed run is still acked.
        """
        async with message.process(requeue=False):
            payload = json.loads(message.body.decode("utf-8"))
            await handler(payload)

    async def consume(self, handler: MessageHandler):
        while self.should_reconnect:
            try:
                if not self.channel or self.channel.is_closed:
                    await self.connect()

                queue = await self._declare_queue()
                logger.info(f"👀 Starting consumer on queue: {self.queue_name}")

                async with queue.iterator() as queue_iter:
                    async for message in queue_iter:
                        try:
                            logger.info("📨 Agent run received")
                            await self.handle_message(message, handler)
                            logger.info("✅ Agent run processed")
                        except Exception as e:
                            logger.error(f"⚠️ Agent run failed: {e}", exc_info=True)

            except asyncio.CancelledError:
                logger.info("Consumer task cancelled")
                raise
            except Exception as e:
                logger.error(f"❌ Consumer crashed: {e}, retrying in {self.reconnect_delay}s...", exc_info=True)
                if self.should_reconnect:
                    await asyncio.sleep(self.reconnect_delay)
                else:
                    break

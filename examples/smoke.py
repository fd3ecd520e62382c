import asyncio
import logging

from chat_relay.client import ChatGateway
from chat_relay.config import GatewaySettings
from chat_relay.errors import ChatRelayError
from chat_relay.sinks import CallbackSink
from chat_relay.types import Message


def print_event(event: dict) -> None:
    if event["reasoning_content"]:
        print(event["reasoning_content"], end="", flush=True)
    if event["content"]:
        print(event["content"], end="", flush=True)
    if event["done"]:
        print()


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    settings = GatewaySettings()
    gateway = ChatGateway.from_settings(settings)
    messages = [Message(role="user", content="Say hello in three languages.")]

    try:
        result = await gateway.complete_streaming(
            settings.base_url,
            settings.api_key,
            settings.model,
            messages,
            settings.reasoning_enabled,
            CallbackSink(print_event),
        )
    except ChatRelayError as e:
        print("Request failed:", type(e).__name__, e)
        return

    if not result.completed:
        print("Stream ended early after", result.updates_delivered, "updates")


if __name__ == "__main__":
    asyncio.run(main())

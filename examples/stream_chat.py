"""Interactive streaming chat against an OpenAI-compatible endpoint.

Demonstrates:
- Streaming a turn with ChatRunner.iter and printing tokens as they arrive
- Rendering the agent/tool progress history once the turn finishes
- Parsing the final reply with the markdown parser

Usage:
    CHATCORE_BASE_URL=http://localhost:8000/v1 uv run examples/stream_chat.py
    uv run examples/stream_chat.py --url http://localhost:8000/v1 --model Qwen/Qwen3-8B --trace
"""

import argparse
import asyncio
import logging
import os

from chatcore.events import ContentDelta, TurnCompleteEvent
from chatcore.markdown import parse, to_dict
from chatcore.provider import OpenAICompatibleProvider
from chatcore.runner import ChatRunner, TurnOutcome
from chatcore.state import AssistantProgressState


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from chatcore.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


def print_progress(state: AssistantProgressState | None):
    if state is None or not state.history:
        return
    for section in state.history:
        label = section.specialist_name or section.agent_name
        if section.domain_display_name:
            label = f"{label} ({section.domain_display_name})"
        print(f"  [{label}]")
        for tool in section.tools:
            print(f"    - {tool.tool_name}: {tool.status}")


async def stream_turn(runner: ChatRunner, text: str):
    print("Assistant: ", end="", flush=True)
    result = None
    async for event in runner.iter(text):
        if isinstance(event, ContentDelta):
            print(event.text, end="", flush=True)
        elif isinstance(event, TurnCompleteEvent):
            result = event.result
    print()
    return result


async def main():
    parser = argparse.ArgumentParser(description="Streaming chat")
    parser.add_argument("--url", default=None)
    parser.add_argument("--model", default=os.getenv("CHATCORE_MODEL", ""))
    parser.add_argument("--markdown", action="store_true",
                        help="print the parsed markdown tree of each reply")
    parser.add_argument("--trace", action="store_true")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
        level=logging.DEBUG if args.debug else logging.WARNING,
    )
    if args.trace:
        setup_tracing("chatcore-example")

    runner = ChatRunner(OpenAICompatibleProvider(base_url=args.url), model=args.model)
    if not runner.model:
        await runner.load_models()
        if runner.models_error:
            print(f"Could not list models: {runner.models_error}")
    print(f"Streaming chat ({runner.model or 'server default'})\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break
        if not runner.can_send(user_input):
            continue

        result = await stream_turn(runner, user_input)
        if result is None:
            continue
        if result.outcome is TurnOutcome.ERROR:
            print(f"Error: {result.error}")
        print_progress(runner.progress_for(result.turn_id))
        if args.markdown and result.content:
            print(to_dict(parse(result.content)))
        print()


if __name__ == "__main__":
    asyncio.run(main())

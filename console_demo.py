"""
Offline console demo: drives a call through the conversation engine.

Runs the real intent detector, routing dispatcher, context store and
interruption tracker against a built-in demo agent. No telephony, no STT
or TTS, no network calls. Caller turns are typed or replayed from a
scripted scenario; a line starting with ``!`` simulates the caller
barging in over the agent before saying the rest of the line.

Usage:
    python console_demo.py
    python console_demo.py --scenario callback
    python console_demo.py --scenario opt-out
    python console_demo.py --agents agents.json --agent-id my-agent
"""

import argparse
import sys
import uuid
from typing import Optional

from callflow.agents.provider import InMemoryAgentConfigProvider
from callflow.config import settings
from callflow.conversation.engine import ConversationEngine
from callflow.conversation.interrupt_adapters import build_twilio_clear_message
from callflow.schemas.routing_schema import TurnResult

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_AGENT_ID = "demo-plumbing"

DEMO_AGENT = {
    "agentId": DEMO_AGENT_ID,
    "name": "Harbour Plumbing reception",
    "locale": "AU",
    "fieldSchemas": [
        {
            "fieldName": "name",
            "label": "Name",
            "dataType": "text",
            "required": True,
            "displayOrder": 1,
            "promptText": "Could I get your first name please?",
            "nlpExtractionHints": ["my name is", "name's", "this is", "i'm"],
        },
        {
            "fieldName": "phone",
            "label": "Phone number",
            "dataType": "phone",
            "required": True,
            "displayOrder": 2,
            "promptText": "What's the best number to reach you on?",
        },
        {
            "fieldName": "email",
            "label": "Email",
            "dataType": "email",
            "required": False,
            "displayOrder": 3,
            "promptText": "Do you have an email address for the confirmation?",
        },
        {
            "fieldName": "postCode",
            "label": "Postcode",
            "dataType": "text",
            "required": True,
            "displayOrder": 4,
            "promptText": "And what's your postcode?",
        },
        {
            "fieldName": "serviceType",
            "label": "Service",
            "dataType": "choice",
            "required": False,
            "displayOrder": 5,
            "choiceOptions": ["blocked drain", "hot water", "leaking tap", "gas fitting"],
        },
    ],
    "intentDefinitions": [
        {
            "id": "opt-out",
            "name": "Stop Recording",
            "matchingType": "regex",
            "regexPattern": "/stop.*recording/i",
            "routingAction": "opt-out",
        },
        {
            "id": "callback",
            "name": "Request Callback",
            "matchingType": "semantic",
            "sampleUtterances": [
                "call me back",
                "can someone call me back",
                "i'd like someone to contact me",
            ],
            "routingAction": "callback",
            "confidenceThreshold": 0.7,
        },
        {
            "id": "human",
            "name": "Speak To Person",
            "matchingType": "semantic",
            "sampleUtterances": ["speak to a real person", "transfer me to someone"],
            "routingAction": "transfer",
        },
        {
            "id": "bye",
            "name": "Goodbye",
            "matchingType": "regex",
            "regexPattern": r"\b(bye|goodbye|that's all)\b",
            "routingAction": "end-call",
        },
    ],
}


class ConsoleSession:
    """Simulates one call in the terminal."""

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[str]] = {
        "callback": [
            "Hi, can someone call me back",
            "my name is Priya",
            "it's zero four one two three four five six seven eight",
            "!actually the postcode is 2000",
            "that's all, bye",
        ],
        "intake": [
            "I've got a blocked drain. My name is Sam, email sam@example.com",
            "0412 345 678",
            "postcode 3121",
            "goodbye",
        ],
        "opt-out": [
            "Please stop the recording",
            "I'd rather speak to a real person",
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(self, engine: ConversationEngine, agent_id: str) -> None:
        self.engine = engine
        self.agent_id = agent_id
        self.call_id = f"DEMO-{uuid.uuid4().hex[:8].upper()}"
        self._ended = False

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[Agent]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _banner(self, title: str, *extra: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  CALLFLOW - {title}{RESET}")
        for line in extra:
            print(f"{BOLD}  {line}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    def _start(self) -> None:
        context = self.engine.start_call(self.call_id, self.agent_id)
        self.system_log(f"Call {self.call_id} started with fields: {', '.join(context.fields)}")
        self.agent_say("Thanks for calling. How can I help you today?")

    def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}", f"Service: {settings.service_name}")
        self._start()
        for step in steps:
            if self._ended:
                break
            print(f"\n{BLUE}[Caller] {RESET}{step.lstrip('!')}")
            self._process_input(step)
        self._finish(f"Scenario '{scenario}' complete.")

    def run(self) -> None:
        self._banner(
            "Console Demo",
            f"Service: {settings.service_name}",
            "Prefix a line with '!' to barge in. Type 'quit' to exit",
        )
        self._start()

        while not self._ended:
            user_input = input(f"\n{BLUE}[Caller] {RESET}").strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                break

            if len(user_input) > self.MAX_INPUT_LENGTH:
                self.agent_say("That was quite long. Could you keep it brief for me?")
                continue

            self._process_input(user_input)

        self._finish("Conversation complete.")

    def _process_input(self, text: str) -> None:
        if text.startswith("!"):
            text = text[1:].strip()
            event = self.engine.handle_twilio_media_stream_event(
                self.call_id,
                {"event": "start", "start": {"customParameters": {"direction": "inbound"}}},
            )
            if event is not None:
                self.system_log(f"Barge-in -> {build_twilio_clear_message('MZ-DEMO')}")

        turn = self.engine.handle_utterance(self.call_id, text)
        self._respond(turn)

    def _respond(self, turn: TurnResult) -> None:
        routing = turn.routing
        fallback = " (fallback)" if routing.is_fallback else ""
        self.system_log(f"Action: {routing.action}{fallback}")
        if turn.extracted_fields:
            spoken = {
                name: self.engine.store.get_spoken_format(self.call_id, name)
                for name in turn.extracted_fields
            }
            self.system_log(f"Extracted: {spoken}")
        if turn.interrupted:
            self.system_log("Utterance captured from interrupt")

        if routing.message:
            self.agent_say(routing.message)
        if turn.should_end_call:
            self._ended = True
            return

        if turn.next_field is not None:
            prompt = turn.next_field.prompt_text or f"Could you tell me your {turn.next_field.field_name}?"
            self.agent_say(prompt)
        else:
            self.agent_say(self.engine.store.get_confirmation_summary(self.call_id))
            self.agent_say("Is there anything else I can help with?")

    def _finish(self, headline: str) -> None:
        context = self.engine.store.get_context(self.call_id)
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {headline}{RESET}")
        if context is not None:
            print(f"{DIM}  Routing path: {' -> '.join(context.routing_path) or '(none)'}{RESET}")
            print(f"{DIM}  Interrupts: {context.interrupt_count}{RESET}")
            print(f"{DIM}  Slot stats: {self.engine.store.get_stats(self.call_id)}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        self.engine.end_call(self.call_id)


def _build_provider(agents_file: Optional[str]) -> InMemoryAgentConfigProvider:
    if agents_file:
        return InMemoryAgentConfigProvider.from_json_file(agents_file)
    return InMemoryAgentConfigProvider.from_dicts([DEMO_AGENT])


def main() -> None:
    parser = argparse.ArgumentParser(description="Callflow console demo")
    parser.add_argument(
        "--scenario",
        choices=list(ConsoleSession.SCENARIOS.keys()),
        help="Run a pre-scripted scenario instead of interactive mode",
    )
    parser.add_argument("--agents", help="JSON file with agent definitions")
    parser.add_argument("--agent-id", default=DEMO_AGENT_ID, help="Agent to run")
    args = parser.parse_args()

    provider = _build_provider(args.agents)
    if provider.get_agent_config(args.agent_id) is None:
        print(f"{RED}Unknown agent: {args.agent_id}{RESET}")
        sys.exit(1)

    with ConversationEngine(provider) as engine:
        session = ConsoleSession(engine, args.agent_id)
        try:
            if args.scenario:
                session.run_scenario(args.scenario)
            else:
                session.run()
        except KeyboardInterrupt:
            print(f"\n{DIM}Session interrupted.{RESET}")
            sys.exit(0)


if __name__ == "__main__":
    main()

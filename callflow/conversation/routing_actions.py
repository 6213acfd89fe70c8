"""
Standard routing actions and their default handlers.

A routing action is the symbolic "what next" an intent maps to. The
catalog below describes the actions every agent gets; agents may declare
further custom actions and register handlers for them at runtime.

Default handlers are pure functions of their RoutingContext. Spoken copy
lives in MESSAGE_TEMPLATES so deployments can adjust wording without
touching handler logic.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Literal, Optional, TypedDict

from callflow.schemas.routing_schema import RoutingContext, RoutingHandlerResult

logger = logging.getLogger(__name__)

CONTINUE_FLOW = "continue-flow"

RoutingHandler = Callable[[RoutingContext], object]


@dataclass(frozen=True)
class RoutingActionDefinition:
    """Catalog entry describing what a routing action does."""

    action: str
    description: str
    requires_fields: tuple[str, ...] = ()
    end_call: bool = False
    category: Literal["standard", "custom"] = "standard"


STANDARD_ROUTING_ACTIONS: dict[str, RoutingActionDefinition] = {
    "callback": RoutingActionDefinition(
        action="callback",
        description=(
            "Collect contact information and terminate the call. Agent will ask "
            "for name and phone number, then end the call."
        ),
        requires_fields=("name", "phone"),
        end_call=True,
    ),
    "quote": RoutingActionDefinition(
        action="quote",
        description=(
            "Collect quotation details and continue with pricing flow. Agent will "
            "gather product/service details and budget information."
        ),
        requires_fields=("product", "quantity", "budget"),
    ),
    CONTINUE_FLOW: RoutingActionDefinition(
        action=CONTINUE_FLOW,
        description=(
            "Continue to the next question in the conversation flow. This is the "
            "default action when no specific intent matches."
        ),
    ),
    "opt-out": RoutingActionDefinition(
        action="opt-out",
        description=(
            "Handle opt-out request (e.g., stop recording, unsubscribe). Agent will "
            "acknowledge and stop the requested action."
        ),
    ),
    "transfer": RoutingActionDefinition(
        action="transfer",
        description=(
            "Transfer the call to a human representative. Agent will collect basic "
            "info and connect to a live agent."
        ),
        requires_fields=("name",),
    ),
    "voicemail": RoutingActionDefinition(
        action="voicemail",
        description="Route to voicemail. Agent will prompt caller to leave a message.",
    ),
    "end-call": RoutingActionDefinition(
        action="end-call",
        description=(
            "End the call immediately. Agent will provide a closing message and terminate."
        ),
        end_call=True,
    ),
    "escalate": RoutingActionDefinition(
        action="escalate",
        description=(
            "Escalate to higher priority handling. Agent will collect urgent details "
            "and flag for immediate follow-up."
        ),
        requires_fields=("name", "phone", "reason"),
    ),
}


class MessageTemplate(TypedDict, total=False):
    message: str
    next_prompt: str


MESSAGE_TEMPLATES: dict[str, MessageTemplate] = {
    "callback": {
        "message": "I'll make sure someone calls you back. Let me get your contact information.",
        "next_prompt": "May I have your name and phone number?",
    },
    "quote": {
        "message": "I'd be happy to help you with a quote. Let me gather some details.",
        "next_prompt": "What product or service are you interested in?",
    },
    CONTINUE_FLOW: {},
    "opt-out": {
        "message": "I understand. I'll stop the recording and make a note of your preference.",
    },
    "transfer": {
        "message": "I'll transfer you to one of our representatives. Please hold for a moment.",
    },
    "voicemail": {
        "message": "I'll connect you to voicemail. Please leave your message after the tone.",
    },
    "end-call": {
        "message": "Thank you for calling. Have a great day!",
    },
    "escalate": {
        "message": "I'll escalate this to our priority team. Can you tell me what's urgent?",
    },
}


def get_routing_action_description(action: str) -> str:
    definition = STANDARD_ROUTING_ACTIONS.get(action.lower())
    if definition is not None:
        return definition.description
    return f"Custom routing action: {action}. Behavior depends on agent configuration."


def is_standard_routing_action(action: str) -> bool:
    return action.lower() in STANDARD_ROUTING_ACTIONS


def get_all_standard_routing_actions() -> list[RoutingActionDefinition]:
    return list(STANDARD_ROUTING_ACTIONS.values())


# ---------------------------------------------------------------------------
# Default handlers
# ---------------------------------------------------------------------------


def _result(
    action: str,
    *,
    should_end_call: bool = False,
    metadata: Optional[dict] = None,
) -> RoutingHandlerResult:
    template = MESSAGE_TEMPLATES.get(action, {})
    return RoutingHandlerResult(
        action=action,
        success=True,
        message=template.get("message"),
        next_prompt=template.get("next_prompt"),
        should_end_call=should_end_call,
        metadata=metadata or {},
    )


def _log_trigger(action: str, context: RoutingContext) -> None:
    logger.info(
        "%s handler triggered for intent: %s", action, context.intent_match.intent_name
    )


def handle_callback(context: RoutingContext) -> RoutingHandlerResult:
    # The call ends once contact details are collected, not immediately.
    _log_trigger("callback", context)
    return _result(
        "callback",
        metadata={"requires_fields": ["name", "phone"], "end_after_collection": True},
    )


def handle_quote(context: RoutingContext) -> RoutingHandlerResult:
    _log_trigger("quote", context)
    return _result("quote", metadata={"requires_fields": ["product", "quantity", "budget"]})


def handle_continue_flow(context: RoutingContext) -> RoutingHandlerResult:
    logger.debug(
        "continue-flow handler triggered for intent: %s", context.intent_match.intent_name
    )
    return _result(CONTINUE_FLOW, metadata={"continue_to_next": True})


def handle_opt_out(context: RoutingContext) -> RoutingHandlerResult:
    _log_trigger("opt-out", context)
    return _result("opt-out", metadata={"stop_recording": True})


def handle_transfer(context: RoutingContext) -> RoutingHandlerResult:
    _log_trigger("transfer", context)
    return _result("transfer", metadata={"transfer_to_human": True})


def handle_voicemail(context: RoutingContext) -> RoutingHandlerResult:
    _log_trigger("voicemail", context)
    return _result("voicemail", metadata={"route_to_voicemail": True})


def handle_end_call(context: RoutingContext) -> RoutingHandlerResult:
    _log_trigger("end-call", context)
    return _result("end-call", should_end_call=True)


def handle_escalate(context: RoutingContext) -> RoutingHandlerResult:
    _log_trigger("escalate", context)
    return _result(
        "escalate",
        metadata={"priority": "high", "requires_urgent_follow_up": True},
    )


DEFAULT_HANDLERS: dict[str, RoutingHandler] = {
    "callback": handle_callback,
    "quote": handle_quote,
    CONTINUE_FLOW: handle_continue_flow,
    "opt-out": handle_opt_out,
    "transfer": handle_transfer,
    "voicemail": handle_voicemail,
    "end-call": handle_end_call,
    "escalate": handle_escalate,
}

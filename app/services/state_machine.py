import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConversationState(str, Enum):
    INITIAL = "initial"
    AWAITING_MENU_CHOICE = "awaiting_menu_choice"
    AWAITING_RECHARGE_AMOUNT = "awaiting_recharge_amount"
    AWAITING_AGENT = "awaiting_agent"


class InputClass(str, Enum):
    GREETING = "greeting"
    OPTION_1 = "option_1"
    OPTION_2 = "option_2"
    OPTION_3 = "option_3"
    AMOUNT = "amount"
    OTHER = "other"


MSG_MENU = (
    "Hola! 👋 Bienvenido de nuevo. Por favor, elige una opción:\n\n"
    "1. Ver saldo\n"
    "2. Recargar cuenta\n"
    "3. Hablar con un asesor"
)
MSG_BALANCE = 'Has elegido "Ver saldo". Tu saldo es de $100.'
MSG_ASK_AMOUNT = 'Has elegido "Recargar cuenta". ¿Qué monto deseas recargar?'
MSG_HANDOFF = 'Has elegido "Hablar con un asesor". En breve uno de nuestros agentes te contactará.'
MSG_INVALID_OPTION = 'Opción no válida. Por favor, responde con 1, 2 o 3. Envía "menú" para ver las opciones de nuevo.'
MSG_RECHARGE_DONE = "Gracias. Se ha procesado una recarga de {amount}."
MSG_INVALID_AMOUNT = "Monto no válido. Por favor, envía solo el número del monto que deseas recargar (ej. 50)."
MSG_NOT_UNDERSTOOD = 'No he entendido tu mensaje. Envía "hola" para empezar.'
MSG_AGENT_TIMEOUT = (
    "Parece que nuestros asesores están ocupados. Has sido devuelto al menú principal. "
    'Envía "hola" para comenzar de nuevo.'
)

GREETINGS = frozenset({"hola", "menú"})
MENU_OPTIONS = {"1": InputClass.OPTION_1, "2": InputClass.OPTION_2, "3": InputClass.OPTION_3}

_LEADING_INT = re.compile(r"^[+-]?\d+")


@dataclass(frozen=True)
class Transition:
    next_state: ConversationState
    reply: str
    touch_interaction: bool = False


@dataclass(frozen=True)
class _Rule:
    next_state: Optional[ConversationState]  # None keeps the current state
    reply: str
    touch_interaction: bool = False


# (state, input class) -> rule. None as state matches any state.
TRANSITIONS: dict[tuple[Optional[ConversationState], InputClass], _Rule] = {
    (None, InputClass.GREETING): _Rule(ConversationState.AWAITING_MENU_CHOICE, MSG_MENU),
    (ConversationState.AWAITING_MENU_CHOICE, InputClass.OPTION_1): _Rule(ConversationState.INITIAL, MSG_BALANCE),
    (ConversationState.AWAITING_MENU_CHOICE, InputClass.OPTION_2): _Rule(
        ConversationState.AWAITING_RECHARGE_AMOUNT, MSG_ASK_AMOUNT
    ),
    (ConversationState.AWAITING_MENU_CHOICE, InputClass.OPTION_3): _Rule(
        ConversationState.AWAITING_AGENT, MSG_HANDOFF, touch_interaction=True
    ),
    (ConversationState.AWAITING_MENU_CHOICE, InputClass.OTHER): _Rule(None, MSG_INVALID_OPTION),
    (ConversationState.AWAITING_RECHARGE_AMOUNT, InputClass.AMOUNT): _Rule(
        ConversationState.INITIAL, MSG_RECHARGE_DONE
    ),
    (ConversationState.AWAITING_RECHARGE_AMOUNT, InputClass.OTHER): _Rule(None, MSG_INVALID_AMOUNT),
}

FALLBACK_RULE = _Rule(ConversationState.INITIAL, MSG_NOT_UNDERSTOOD)


def normalize_text(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def parse_amount(text: str) -> Optional[int]:
    """Leading integer of the text, or None. "50 pesos" -> 50."""
    match = _LEADING_INT.match(text.strip())
    if not match:
        return None
    return int(match.group(0))


def classify_input(state: ConversationState, text: str) -> InputClass:
    """Bucket normalized text into the input classes the table is keyed by."""
    if text in GREETINGS:
        return InputClass.GREETING
    if state == ConversationState.AWAITING_MENU_CHOICE:
        return MENU_OPTIONS.get(text, InputClass.OTHER)
    if state == ConversationState.AWAITING_RECHARGE_AMOUNT:
        amount = parse_amount(text)
        if amount is not None and amount > 0:
            return InputClass.AMOUNT
    return InputClass.OTHER


def advance(current_state: ConversationState | str, text: str) -> Transition:
    """Pure transition: (state, message text) -> (next state, reply).

    Persistence of the resulting state is left to the caller.
    """
    state = ConversationState(current_state)
    normalized = normalize_text(text)
    input_class = classify_input(state, normalized)

    rule = TRANSITIONS.get((None, input_class)) or TRANSITIONS.get((state, input_class)) or FALLBACK_RULE

    reply = rule.reply
    if input_class == InputClass.AMOUNT:
        reply = reply.format(amount=parse_amount(normalized))

    next_state = rule.next_state if rule.next_state is not None else state
    return Transition(next_state=next_state, reply=reply, touch_interaction=rule.touch_interaction)

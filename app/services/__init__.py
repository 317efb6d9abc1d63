from app.services.conversation_service import (
    check_agent_timeouts,
    find_or_create_group,
    find_or_create_session,
    find_or_create_user,
    update_user_interaction_time,
    update_user_state,
)
from app.services.echo_registry import EchoRegistry
from app.services.message_service import (
    save_group_message,
    save_message,
)
from app.services.state_machine import (
    ConversationState,
    Transition,
    advance,
)
from app.services.text_randomizer import randomize_text, strip_invisible

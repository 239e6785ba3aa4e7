# controllers/dialogue.py
"""Turn-by-turn transition function for the material request dialogue.

``transition(state, command, catalog)`` never mutates its input: it works on a
deep copy and returns the next state together with the assistant replies.
Anything that needs I/O (session lifecycle, submission) is returned as an
``effect`` for the caller to run.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from schemas import ConversationState, Draft, DraftItem, PendingDisambiguation, Priority, PRIORITIES, Step
from controllers import commands as cmd
from controllers.ai_actions import merge_action, CREATE_REQUEST
from controllers.matching import CatalogIndex, parse_item_line, split_categories

EFFECT_SUBMIT = "submit"
EFFECT_END_SESSION = "end_session"
EFFECT_NEW_SESSION = "new_session"

WELCOME_TEXT = "Hi! I'm your material request assistant. Let's create a new material request. Type the site name to begin."
PRIORITY_PROMPT = "Choose priority: low | medium | high | urgent"
ITEMS_PROMPT = (
    "Priority saved. Now add items. Format examples:\n"
    "MTR-1001 x 5\n"
    "steel bolt x 20\n"
    'Type "done" when finished or "list" to review.'
)
ITEM_HINT = 'Add more, type "list", or "done".'


@dataclass
class Turn:
    state: ConversationState
    replies: List[str] = field(default_factory=list)
    effect: Optional[str] = None
    # True when the input was not understood; AI mode forwards these turns
    fallback: bool = False


def initial_state() -> ConversationState:
    return ConversationState()


def pending_consistent(state: ConversationState) -> bool:
    if state.step == Step.DISAMBIGUATE:
        return state.pending is not None and bool(state.pending.options)
    return state.pending is None


def summarize_draft(draft: Draft) -> str:
    if not draft.items:
        return "No items yet."
    return "\n".join(
        f"{idx}. {item.material_id or item.material_name} x {item.quantity}"
        for idx, item in enumerate(draft.items, 1)
    )


def review_text(draft: Draft) -> str:
    text = (
        "Review draft:\n"
        f"Site: {draft.site_name}\n"
        f"Priority: {draft.priority.value if draft.priority else ''}\n"
        f"Items:\n{summarize_draft(draft)}"
    )
    if draft.notes:
        text += f"\nNotes: {draft.notes}"
    return text + '\nType "submit" to create request or "cancel" to abort.'


def reset_draft(state: ConversationState, step: Step = Step.SITE) -> ConversationState:
    state = state.model_copy(deep=True)
    state.draft = Draft()
    state.pending = None
    state.step = step
    return state


def mark_submitted(state: ConversationState) -> ConversationState:
    state = state.model_copy(deep=True)
    state.step = Step.SUBMITTED
    return state


def build_ai_prompt(state: ConversationState, user_text: str) -> List[Dict[str, str]]:
    """AI transcript + the new user turn + a system snapshot of the draft."""
    messages = [{"role": m.role, "content": m.content} for m in state.ai_messages]
    messages.append({"role": "user", "content": user_text})
    draft = state.draft
    preview = (
        "Current draft:\n"
        f"Site:{draft.site_name}\n"
        f"Priority:{draft.priority.value if draft.priority else ''}\n"
        f"Items:\n{summarize_draft(draft)}\n"
        f"Step:{state.step.value}"
    )
    messages.append({"role": "system", "content": preview})
    return messages


def apply_ai_action(state: ConversationState, action: dict, catalog: CatalogIndex) -> Tuple[ConversationState, List[str]]:
    """Merge a create_request action and move past steps it has answered."""
    if not action or action.get("action") != CREATE_REQUEST:
        return state, []
    state = state.model_copy(deep=True)
    state.draft, updates = merge_action(state.draft, action, catalog)
    if state.step in (Step.WELCOME, Step.SITE) and state.draft.site_name:
        state.step = Step.PRIORITY
    if state.step == Step.PRIORITY and state.draft.priority:
        state.step = Step.ITEMS
    return state, updates


def transition(state: ConversationState, command: cmd.Command, catalog: CatalogIndex) -> Turn:
    state = state.model_copy(deep=True)

    if isinstance(command, cmd.ToggleAI):
        state.ai_mode = command.enabled
        if command.enabled:
            return Turn(state, ["AI mode enabled. I will augment guidance with AI responses."])
        return Turn(state, ["AI mode disabled. Using local rule-based guidance only."])
    if isinstance(command, cmd.EndSession):
        return Turn(state, effect=EFFECT_END_SESSION)
    if isinstance(command, cmd.NewSession):
        return Turn(state, effect=EFFECT_NEW_SESSION)
    if isinstance(command, cmd.ToggleStream):
        state.stream_mode = command.enabled
        if command.enabled:
            return Turn(state, ["Streaming mode enabled. AI replies will appear progressively."])
        return Turn(state, ["Streaming mode disabled. AI replies will be shown after processing."])

    if isinstance(command, cmd.ListMaterials):
        return _list_materials(state, command, catalog)
    if state.awaiting_categories:
        return _category_reply(state, command, catalog)

    if isinstance(command, cmd.Cancel) and state.step != Step.DISAMBIGUATE:
        state = reset_draft(state)
        return Turn(state, ["Draft cleared. Provide a site name to start again."])

    return STEP_HANDLERS[state.step](state, command, catalog)


def _list_materials(state, command, catalog):
    available = ", ".join(catalog.categories())
    if command.categories:
        matched = catalog.match_categories(split_categories(command.categories))
        if not matched:
            return Turn(state, ["No categories matched. Available categories:\n" + available])
        return Turn(state, [catalog.render_categories(matched)])
    state.awaiting_categories = True
    return Turn(state, [
        'Enter category names separated by commas, or type "all" for every category. Available:\n' + available
    ])


def _category_reply(state, command, catalog):
    if isinstance(command, cmd.Cancel):
        state.awaiting_categories = False
        return Turn(state, ["Material listing cancelled."])
    if isinstance(command, cmd.All):
        matched = catalog.categories()
    else:
        matched = catalog.match_categories(split_categories(command.text))
    if not matched:
        return Turn(state, ["No categories matched. Try again or type cancel."])
    state.awaiting_categories = False
    return Turn(state, [catalog.render_categories(matched)])


def _on_site(state, command, catalog):
    name = command.text
    state.draft.site_name = name
    state.step = Step.PRIORITY
    reply = f'Site set to "{name}". {PRIORITY_PROMPT}'
    if catalog.sites and not catalog.is_known_site(name):
        reply += "\n(Note: this site is not in the known site list.)"
    return Turn(state, [reply])


def _on_priority(state, command, catalog):
    lower = command.text.lower()
    if lower not in PRIORITIES:
        return Turn(state, ["Invalid priority. Please type: low | medium | high | urgent"], fallback=True)
    state.draft.priority = Priority(lower)
    state.step = Step.ITEMS
    return Turn(state, [ITEMS_PROMPT])


def _on_items(state, command, catalog):
    if isinstance(command, cmd.ListItems):
        return Turn(state, ["Current items:\n" + summarize_draft(state.draft)])
    if isinstance(command, cmd.Done):
        if not state.draft.items:
            return Turn(state, ["You have no items yet. Add at least one."])
        state.step = Step.NOTES
        return Turn(state, ['Add optional notes or type "skip" to continue.'])

    parsed = parse_item_line(command.text)
    if not parsed:
        return Turn(
            state,
            ["Could not parse that. Try: MATERIAL_ID x QTY or Name x QTY. Example: cable-12 x 10"],
            fallback=True,
        )
    matches = catalog.find(parsed.token)
    if not matches:
        return Turn(state, [f'No material matched "{parsed.token}". Try a different name or ID.'], fallback=True)
    if len(matches) == 1:
        found = matches[0]
        state.draft.items.append(DraftItem(
            material_id=found.id,
            material_name=found.display_name or parsed.token,
            quantity=parsed.qty,
        ))
        return Turn(state, [f"Added {found.id} x {parsed.qty}. {ITEM_HINT}"])

    state.pending = PendingDisambiguation(base_token=parsed.token, qty=parsed.qty, options=matches)
    state.step = Step.DISAMBIGUATE
    options = "\n".join(f"{i}. {m.id} - {m.display_name}" for i, m in enumerate(matches, 1))
    return Turn(state, ["Multiple matches found:\n" + options + "\nType the number to select or cancel"])


def _on_disambiguate(state, command, catalog):
    pending = state.pending
    if isinstance(command, cmd.Cancel):
        state.pending = None
        state.step = Step.ITEMS
        return Turn(state, ["Disambiguation cancelled. Continue adding items."])
    if isinstance(command, cmd.Choice) and 1 <= command.number <= len(pending.options):
        chosen = pending.options[command.number - 1]
        state.draft.items.append(DraftItem(
            material_id=chosen.id,
            material_name=chosen.display_name or pending.base_token,
            quantity=pending.qty,
        ))
        state.pending = None
        state.step = Step.ITEMS
        return Turn(state, [f"Added {chosen.id} x {pending.qty}. {ITEM_HINT}"])
    return Turn(state, ["Please choose a number from the list, or type cancel to abort."])


def _on_notes(state, command, catalog):
    if not isinstance(command, cmd.Skip):
        state.draft.notes = command.text
    state.step = Step.CONFIRM
    return Turn(state, [review_text(state.draft)])


def _on_confirm(state, command, catalog):
    if isinstance(command, cmd.Submit):
        return Turn(state, effect=EFFECT_SUBMIT)
    return Turn(state, ['Type "submit" to proceed or "cancel" to abort.'], fallback=True)


def _on_submitted(state, command, catalog):
    return Turn(state, ["This request has already been submitted. A new draft will start shortly."], fallback=True)


STEP_HANDLERS = {
    Step.WELCOME: _on_site,
    Step.SITE: _on_site,
    Step.PRIORITY: _on_priority,
    Step.ITEMS: _on_items,
    Step.DISAMBIGUATE: _on_disambiguate,
    Step.NOTES: _on_notes,
    Step.CONFIRM: _on_confirm,
    Step.SUBMITTED: _on_submitted,
}

"""Language-model pipelines around the turn engine.

  proposals   — one proposed action per active character for a scene,
                enqueued on the engine in participation order.
  resolution  — record a check for an action, narrate it, log it, end the turn.
  content     — GM-driven generation: world parsing, character drafts,
                main quest, scene suggestions.

Every pipeline routes model output through story_forge.recovery and has a
defined fallback when nothing structured comes back.
"""

from .content import (  # noqa: F401
    CharacterDraft,
    ParsedWorld,
    SceneSuggestion,
    generate_character,
    generate_main_quest,
    generate_scene_suggestions,
    parse_world_content,
)
from .proposals import (  # noqa: F401
    ProposalFailure,
    ProposalRound,
    action_from_response,
    eligible_characters,
    propose_action,
    propose_actions,
    recent_event_summaries,
)
from .resolution import (  # noqa: F401
    ResolvedCheck,
    end_turn,
    fallback_narration,
    narrate_result,
    resolve_action,
)

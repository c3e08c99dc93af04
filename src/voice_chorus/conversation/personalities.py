"""
Built-in personalities.

Three voices placed around the listener: the advisor in front, the critic to
the left and the supporter to the right.
"""

from voice_chorus.config import Settings
from voice_chorus.conversation.schemas import ParticipantConfig, Position
from voice_chorus.errors import UnknownParticipantError

_SPOKEN_RULES = (
    "Your responses will be read out loud, so respond with only the words you want to say, "
    "and DO NOT include any special characters\n"
    "!!!DO NOT RESPOND WITH MORE THAN 5 WORDS!!!"
)

ADVISOR_PROMPT = f"""You are a wise advisor who guides the user through their conversation. Your responses are delivered while they are talking. You should:
1. Keep responses VERY brief (maximum 5 words)
2. Provide strategic suggestions for what to say next
3. Maintain a calm, thoughtful demeanor
4. Focus on helping the user achieve their conversational goals
5. {_SPOKEN_RULES}"""

CRITIC_PROMPT = f"""You are a critical voice that challenges the user's thoughts. Your responses come while they are talking. You should:
1. Keep responses VERY brief (maximum 5 words)
2. Point out flaws in their reasoning
3. Suggest alternative perspectives
4. Be provocative but not hostile
5. Help them think more deeply
6. {_SPOKEN_RULES}"""

SUPPORTER_PROMPT = f"""You are an encouraging supporter who boosts the user's confidence. Your responses come while they are talking. You should:
1. Keep responses VERY brief (maximum 5 words)
2. Offer positive reinforcement
3. Highlight their good points
4. Add enthusiastic energy
5. Help them feel more confident
6. {_SPOKEN_RULES}"""

ADVISOR_POSITION = Position(x=0, y=0, z=1)


def default_personalities(settings: Settings) -> list[ParticipantConfig]:
    """
    Build the personality roster in round-robin order.

    Args:
        settings: Application settings (voices and history bounds).

    Returns:
        Personality configurations.
    """
    common = {
        "max_history_length": settings.max_history_length,
        "max_total_chars": settings.max_total_chars,
    }
    return [
        ParticipantConfig(
            id="advisor",
            display_name="The Advisor",
            voice_id=settings.elevenlabs_voice_id_1,
            position=ADVISOR_POSITION,
            system_prompt=ADVISOR_PROMPT,
            **common,
        ),
        ParticipantConfig(
            id="critic",
            display_name="The Critic",
            voice_id=settings.elevenlabs_voice_id_2,
            position=Position(x=-1, y=0, z=0.5),
            system_prompt=CRITIC_PROMPT,
            **common,
        ),
        ParticipantConfig(
            id="supporter",
            display_name="The Supporter",
            voice_id=settings.elevenlabs_voice_id_3,
            position=Position(x=1, y=0, z=0.5),
            system_prompt=SUPPORTER_PROMPT,
            **common,
        ),
    ]


def personality_position(settings: Settings, participant_id: str) -> Position:
    """Seat of a built-in personality; raises UnknownParticipantError for other ids."""
    for personality in default_personalities(settings):
        if personality.id == participant_id:
            return personality.position
    raise UnknownParticipantError(participant_id)

"""Create demo data for development/testing."""

import shutil

from story_forge.models import (
    Attributes,
    Background,
    Character,
    Conflict,
    Faction,
    Location,
    Memory,
    Session,
    Skills,
    World,
)
from story_forge.storage import Storage

DEMO_BACKGROUND = (
    "Deep in the mountain pass lies a village terrorized by a young dragon. "
    "The townsfolk need heroes, but things are not as simple as they seem."
)


def create_demo_data(storage: Storage) -> Session:
    """Wipe existing records and create a demo world, party and session."""
    for sub in ("worlds", "characters", "sessions", "main_quests"):
        shutil.rmtree(storage.base_path / sub, ignore_errors=True)
    storage = Storage(storage.base_path)

    world = storage.save_world(World(
        name="Dragon's Hollow",
        background=DEMO_BACKGROUND,
        locations=[
            Location(name="Dragon's Hollow", description="Half-burned village at the mouth of the pass."),
            Location(name="The Ember Caves", description="Smoking caverns above the tree line."),
        ],
        factions=[
            Faction(name="Village Council", description="Frightened elders", influence=3),
            Faction(name="Ashen Cult", description="Worships the dragon in secret", influence=6),
        ],
        conflicts=[
            Conflict(name="The Dragon's Tithe", description="Livestock demanded each moon", status="active"),
        ],
    ))

    gareth = Character(
        world_id=world.id,
        name="Gareth",
        race="Human",
        character_class="Fighter",
        alignment="lawful-good",
        level=3,
        backstory="A former captain of the king's guard, exiled for refusing an unjust order.",
        attributes=Attributes(strength=16, dexterity=12, constitution=15,
                              intelligence=10, wisdom=11, charisma=13),
        skills=Skills(combat={"Longsword": 5, "Shield": 3}, social={"Intimidation": 2}),
        background=Background(
            personality="Gruff, dutiful, quick to protect the weak.",
            ideal="Loyalty",
            bond="Sworn to protect Elena",
            flaw="Cannot back down from a challenge",
        ),
        memories=[
            Memory(content="Saw the dragon burn the granary.", importance=8),
            Memory(content="Elena patched my arm after the ambush.", importance=6),
        ],
        current_hp=28,
        max_hp=28,
    )
    elena = Character(
        world_id=world.id,
        name="Elena",
        race="Half-elf",
        character_class="Cleric",
        alignment="neutral-good",
        level=3,
        backstory="A healer from the valley temple, searching for her missing brother.",
        attributes=Attributes(strength=9, dexterity=12, constitution=12,
                              intelligence=13, wisdom=16, charisma=14),
        skills=Skills(knowledge={"Medicine": 5, "Religion": 4}, social={"Persuasion": 3}),
        background=Background(
            personality="Calm and curious.",
            ideal="Mercy",
            bond="Her brother vanished near the Ember Caves",
            flaw="Trusts strangers too easily",
        ),
        memories=[Memory(content="Her brother's last letter mentioned the Ashen Cult.", importance=9)],
        current_hp=21,
        max_hp=21,
    )
    storage.save_character(gareth)
    storage.save_character(elena)

    session = Session(
        world_id=world.id,
        name="Dragon's Hollow Demo Run",
        characters=[gareth.id, elena.id],
    )
    storage.save_session(session)
    return session

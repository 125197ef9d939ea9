"""
Game constants for Mafia Showdown.
"""

# Match size
MIN_MAX_PLAYERS = 2
MAX_MAX_PLAYERS = 8
DEFAULT_MAX_PLAYERS = 4

# Role distribution, keyed by player count
# Format: (dons, traitors, capos, fbi_agents)
ROLE_TABLE = {
    4: (1, 1, 0, 2),
    5: (1, 1, 1, 2),
    6: (1, 1, 1, 3),
    7: (1, 1, 2, 3),
}

# Seat the Don is moved to after roles are shuffled
DON_SEAT = 0

# Setup
CHARACTER_OPTIONS_COUNT = 2
DON_AMMO_BONUS = 1

# Turns
BASE_ATTACK_RANGE = 1
TURN_DRAW_COUNT = 2
TURN_TIMEOUT = 30  # seconds
SHIELD_DURATION = 1
KIDNAP_RANGE = 1

# Special effect tags printed on cards
KIDNAP_TAG = "Kidnap"
DUEL_TAG = "Duel"
DOUBLE_SHOT_TAG = "Can shoot twice"
BLOCK_TAG = "Block next card"

# Card catalog
# Format: (type, name, effect_kind, value, description, range)
# value is the amount for DAMAGE/HEAL/DRAW/RANGE and the tag for SPECIAL
CARD_CATALOG = [
    # Weapons
    ("WEAPON", "Revolver", "DAMAGE", 1, "Basic weapon", 1),
    ("WEAPON", "Shotgun", "DAMAGE", 2, "Powerful close-range weapon", 1),
    ("WEAPON", "Rifle", "DAMAGE", 1, "Long-range weapon", 2),
    ("WEAPON", "Double Barrel", "SPECIAL", DOUBLE_SHOT_TAG, "Allows two shots per turn", 1),

    # Defense
    ("DEFENSE", "Behind the Barricade", "SHIELD", None, "Block an attack", 1),
    ("DEFENSE", "Dodge", "SHIELD", None, "Avoid being hit", 1),

    # Equipment
    ("EQUIPMENT", "Scope", "RANGE", 1, "Increase attack range by 1", 1),
    ("EQUIPMENT", "Don's Cigar", "HEAL", 1, "Heal 1 health point", 1),
    ("EQUIPMENT", "Golden Watch", "DRAW", 3, "Draw 3 cards", 1),

    # Actions
    ("ACTION", "Shootout", "DAMAGE", 1, "Standard attack", 1),
    ("ACTION", "Showdown", "SPECIAL", DUEL_TAG, "Challenge to a duel", 1),
    ("ACTION", "Dirty Ties", "SPECIAL", KIDNAP_TAG, "Take a card from opponent", 1),
    ("ACTION", "Bribe", "SPECIAL", BLOCK_TAG, "Prevent opponent from playing next card", 1),
]

# Cards that get a second copy in every deck
DUPLICATED_CARD_TYPES = {"DEFENSE"}
DUPLICATED_CARD_NAMES = {"Revolver"}

TOTAL_CATALOG_CARDS = len(CARD_CATALOG) + sum(
    1 for card_type, name, *_ in CARD_CATALOG
    if card_type in DUPLICATED_CARD_TYPES or name in DUPLICATED_CARD_NAMES
)

# Character catalog
# Format: (name, ability, base_health, base_ammo)
CHARACTERS = [
    ("Enforcer", "Can deal extra damage", 4, 2),
    ("Medic", "Can heal other players", 3, 1),
    ("Scout", "Can see other players' cards", 3, 2),
    ("Sniper", "Can attack from distance", 3, 1),
    ("Tank", "Has extra health", 5, 1),
    ("Assassin", "Can eliminate players silently", 3, 2),
]

"""
Tests for the match engine: deck, catalog, players and the match itself.

Run with: python3 tests/test_game_engine/test_game_engine.py
"""

import random
import sys
import unittest
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from server.game_engine import (
    ActiveEffect,
    Card,
    CardEffect,
    Deck,
    EffectType,
    Match,
    Player,
    SnapshotError,
    WinCondition,
    WinResult,
    all_characters,
    can_see_role,
    character_options,
    get_character,
    is_action_available,
    roles_for_count,
)
from server.game_engine.errors import MatchNotInitializedError
from shared.constants import (
    DON_SEAT, KIDNAP_TAG, TOTAL_CATALOG_CARDS, TURN_DRAW_COUNT
)
from shared.enums import (
    ActiveEffectKind, CardType, MatchPhase, MatchStatus, PlayerAction, Role
)


def make_card(name: str = "Revolver", card_type: CardType = CardType.WEAPON,
              effect: CardEffect | None = None, card_range: int = 1) -> Card:
    """Build a loose card for a test hand."""
    return Card(
        card_type=card_type,
        name=name,
        effect=effect or CardEffect.damage(1),
        range=card_range,
    )


def revolver() -> Card:
    return make_card("Revolver", CardType.WEAPON, CardEffect.damage(1), 1)


def scope() -> Card:
    return make_card("Scope", CardType.EQUIPMENT, CardEffect.range(1))


def dodge() -> Card:
    return make_card("Dodge", CardType.DEFENSE, CardEffect.shield())


def build_lobby(player_count: int = 4, seed: int = 7, **kwargs) -> Match:
    """A match with every seat filled, waiting for roles."""
    match = Match.create("Test Match", "user-0", "Host", max_players=player_count,
                         seed=seed, **kwargs)
    for i in range(1, player_count):
        ok, msg = match.add_player(Player(user_id=f"user-{i}", username=f"Player {i}"))
        assert ok, msg
    return match


def build_started_match(player_count: int = 4, seed: int = 7, **kwargs) -> Match:
    """A match that has finished setup and is on the first player's draw."""
    match = build_lobby(player_count, seed, **kwargs)
    ok, msg = match.distribute_roles()
    assert ok, msg
    for player in match.players:
        ok, msg = match.select_character(player.id, player.character_options[0])
        assert ok, msg
    return match


class EliminationEndsMatch(WinCondition):
    """Ends the match as soon as anyone is eliminated."""

    def check(self, match):
        out = [p for p in match.players if p.is_eliminated]
        if not out:
            return None
        survivors = [p.id for p in match.active_players]
        return WinResult(winning_side="survivors", winner_ids=survivors, reason="first blood")


# =============================================================================
# Deck
# =============================================================================

class TestDeck(unittest.TestCase):
    """Deck building, drawing and reshuffling."""

    def test_initialize_builds_full_catalog(self):
        deck = Deck(rng=random.Random(1))
        deck.initialize()

        self.assertEqual(len(deck), TOTAL_CATALOG_CARDS)
        self.assertEqual(len({card.id for card in deck.cards}), TOTAL_CATALOG_CARDS)
        names = [card.name for card in deck.cards]
        self.assertEqual(names.count("Revolver"), 2)
        self.assertEqual(names.count("Dodge"), 2)
        self.assertEqual(names.count("Behind the Barricade"), 2)
        self.assertEqual(names.count("Rifle"), 1)

    def test_draw_takes_from_top(self):
        deck = Deck(cards=[make_card("A"), make_card("B"), make_card("C")])
        hand, discard = [], []

        drawn = deck.draw(2, hand, discard)

        self.assertEqual([c.name for c in drawn], ["C", "B"])
        self.assertEqual(hand, drawn)
        self.assertEqual(len(deck), 1)

    def test_draw_reshuffles_discard_pile_when_empty(self):
        deck = Deck(rng=random.Random(3))
        hand = []
        discard = [make_card("X"), make_card("Y")]

        drawn = deck.draw(1, hand, discard)

        self.assertEqual(len(drawn), 1)
        self.assertEqual(discard, [])
        self.assertEqual(len(deck), 1)

    def test_draw_stops_when_everything_is_empty(self):
        deck = Deck(cards=[make_card("Only")])
        hand = []

        drawn = deck.draw(3, hand, [])

        self.assertEqual(len(drawn), 1)
        self.assertTrue(deck.is_empty)
        self.assertIsNone(deck.draw_one([]))

    def test_reshuffle_keeps_existing_cards(self):
        deck = Deck(cards=[make_card("Keep")])
        discard = [make_card("Back")]

        deck.reshuffle(discard)

        self.assertEqual(sorted(c.name for c in deck.cards), ["Back", "Keep"])
        self.assertEqual(discard, [])


class TestCards(unittest.TestCase):
    """Card effect variants and serialization."""

    def test_effect_descriptions(self):
        self.assertEqual(CardEffect.damage(2).description, "Deal 2 damage")
        self.assertEqual(CardEffect.heal(1).description, "Heal 1 HP")
        self.assertEqual(CardEffect.shield().description, "Block next attack")
        self.assertEqual(CardEffect.special(KIDNAP_TAG).description, KIDNAP_TAG)

    def test_card_dict_shape(self):
        card = make_card("Rifle", CardType.WEAPON, CardEffect.damage(1), 2)
        data = card.to_dict()

        self.assertEqual(data["type"], "WEAPON")
        self.assertEqual(data["effect"], {"kind": "DAMAGE", "amount": 1})
        self.assertEqual(data["range"], 2)
        self.assertEqual(Card.from_dict(data), card)

    def test_invalid_card_raises_snapshot_error(self):
        with self.assertRaises(SnapshotError):
            Card.from_dict({"type": "WEAPON", "name": "Broken"})
        with self.assertRaises(SnapshotError):
            CardEffect.from_dict({"kind": "TELEPORT", "amount": 1})


# =============================================================================
# Catalog
# =============================================================================

class TestCatalog(unittest.TestCase):
    """Role table, character options and visibility."""

    def test_roles_have_exactly_one_don(self):
        for count in range(4, 8):
            roles = roles_for_count(count)
            self.assertEqual(len(roles), count)
            self.assertEqual(roles.count(Role.DON), 1)

    def test_role_table_for_five(self):
        roles = roles_for_count(5)
        self.assertEqual(roles.count(Role.TRAITOR), 1)
        self.assertEqual(roles.count(Role.CAPO), 1)
        self.assertEqual(roles.count(Role.FBI_AGENT), 2)

    def test_unsupported_counts_are_empty(self):
        for count in (2, 3, 8):
            self.assertEqual(roles_for_count(count), [])

    def test_character_options_are_distinct(self):
        rng = random.Random(11)
        for _ in range(20):
            options = character_options(rng)
            self.assertEqual(len(options), 2)
            self.assertNotEqual(options[0], options[1])

    def test_character_lookup(self):
        self.assertEqual(len(all_characters()), 6)
        tank = get_character("tank")
        self.assertEqual(tank.base_health, 5)
        self.assertIsNone(get_character("wizard"))

    def test_role_visibility(self):
        self.assertTrue(can_see_role(Role.FBI_AGENT, Role.DON, False))
        self.assertTrue(can_see_role(Role.FBI_AGENT, Role.FBI_AGENT, True))
        self.assertTrue(can_see_role(Role.DON, Role.CAPO, False))
        self.assertFalse(can_see_role(Role.CAPO, Role.CAPO, False))
        self.assertFalse(can_see_role(Role.DON, Role.TRAITOR, False))
        self.assertFalse(can_see_role(Role.DON, None, False))

    def test_action_availability(self):
        self.assertTrue(is_action_available(PlayerAction.HEAL, Role.DON, 0))
        self.assertFalse(is_action_available(PlayerAction.HEAL, Role.CAPO, 3))
        self.assertTrue(is_action_available(PlayerAction.INVESTIGATE, Role.FBI_AGENT, 0))
        self.assertFalse(is_action_available(PlayerAction.ATTACK, Role.TRAITOR, 0))
        self.assertFalse(is_action_available(PlayerAction.PROTECT, None, 5))


# =============================================================================
# Player
# =============================================================================

class TestPlayer(unittest.TestCase):
    """Vitals and hand management."""

    def setUp(self):
        self.player = Player(user_id="u1", username="Vito")
        self.player.assign_character(get_character("enforcer"))

    def test_assign_character_sets_vitals(self):
        self.assertTrue(self.player.is_ready)
        self.assertEqual(self.player.health, 4)
        self.assertEqual(self.player.max_health, 4)
        self.assertEqual(self.player.ammo, 2)

    def test_don_gets_extra_ammo(self):
        don = Player(user_id="u2", username="Don", role=Role.DON)
        don.assign_character(get_character("enforcer"))
        self.assertEqual(don.ammo, 3)

    def test_damage_and_heal_are_clamped(self):
        self.assertEqual(self.player.apply_damage(10), 0)
        self.assertTrue(self.player.is_eliminated)
        self.assertFalse(self.player.can_be_targeted)

        self.assertEqual(self.player.heal(10), 4)
        self.assertFalse(self.player.is_eliminated)

    def test_player_without_character_is_not_eliminated(self):
        fresh = Player(user_id="u3", username="New")
        self.assertEqual(fresh.health, 0)
        self.assertFalse(fresh.is_eliminated)

    def test_matches_either_id(self):
        self.assertTrue(self.player.matches("u1"))
        self.assertTrue(self.player.matches(self.player.id))
        self.assertFalse(self.player.matches("someone-else"))

    def test_remove_card(self):
        card = revolver()
        self.player.hand.append(card)

        self.assertIs(self.player.remove_card(card.id), card)
        self.assertIsNone(self.player.remove_card(card.id))
        self.assertEqual(self.player.hand, [])


# =============================================================================
# Match: setup
# =============================================================================

class TestMatchSetup(unittest.TestCase):
    """Lobby, role distribution and character selection."""

    def test_create_seats_host(self):
        match = Match.create("Lobby", "host", "Host", max_players=4)

        self.assertEqual(len(match.players), 1)
        self.assertEqual(match.players[0].user_id, "host")
        self.assertEqual(match.status, MatchStatus.WAITING)
        self.assertEqual(match.version, 0)

    def test_create_rejects_bad_size(self):
        with self.assertRaises(ValueError):
            Match.create("Lobby", "host", "Host", max_players=1)
        with self.assertRaises(ValueError):
            Match.create("Lobby", "host", "Host", max_players=9)

    def test_filling_the_last_seat_starts_role_distribution(self):
        match = Match.create("Lobby", "user-0", "Host", max_players=4)
        for i in range(1, 3):
            match.add_player(Player(user_id=f"user-{i}", username=f"P{i}"))
        self.assertEqual(match.status, MatchStatus.WAITING)

        ok, _ = match.add_player(Player(user_id="user-3", username="P3"))

        self.assertTrue(ok)
        self.assertEqual(match.status, MatchStatus.PREPARING)
        self.assertEqual(match.current_phase, MatchPhase.ROLE_DISTRIBUTION)
        self.assertEqual(len(match.roles), 4)

    def test_join_rules(self):
        match = build_lobby(4)

        ok, msg = match.add_player(Player(user_id="late", username="Late"))
        self.assertFalse(ok)
        self.assertIn("already started", msg)

        open_match = Match.create("Lobby", "host", "Host", max_players=4)
        ok, _ = open_match.add_player(Player(user_id="host", username="Again"))
        self.assertFalse(ok)
        self.assertEqual(open_match.version, 0)

    def test_leave_lobby(self):
        match = Match.create("Lobby", "host", "Host", max_players=4)
        match.add_player(Player(user_id="guest", username="Guest"))

        ok, _ = match.remove_player("guest")

        self.assertTrue(ok)
        self.assertEqual(len(match.players), 1)
        self.assertFalse(match.remove_player("guest")[0])

    def test_unsupported_player_count_blocks_distribution(self):
        match = build_lobby(2)
        self.assertEqual(match.roles, [])

        ok, msg = match.distribute_roles()

        self.assertFalse(ok)
        self.assertIn("unsupported", msg)
        self.assertEqual(match.current_phase, MatchPhase.ROLE_DISTRIBUTION)

    def test_distribute_roles_seats_don_first(self):
        for seed in range(10):
            match = build_lobby(5, seed=seed)
            ok, _ = match.distribute_roles()

            self.assertTrue(ok)
            self.assertEqual(match.players[DON_SEAT].role, Role.DON)
            self.assertEqual(sorted(p.role for p in match.players), sorted(roles_for_count(5)))
            self.assertEqual(match.current_phase, MatchPhase.CHARACTER_SELECTION)
            for player in match.players:
                self.assertEqual(len(player.character_options), 2)

    def test_select_character_requires_offered_option(self):
        match = build_lobby(4)
        match.distribute_roles()
        player = match.players[1]
        not_offered = next(c for c in all_characters() if c not in player.character_options)

        ok, _ = match.select_character(player.id, not_offered)
        self.assertFalse(ok)

        ok, _ = match.select_character(player.id, player.character_options[1])
        self.assertTrue(ok)
        self.assertFalse(match.select_character(player.id, player.character_options[0])[0])

    def test_all_ready_starts_match(self):
        match = build_started_match(4)

        self.assertEqual(match.status, MatchStatus.IN_PROGRESS)
        self.assertEqual(match.current_phase, MatchPhase.DRAWING_CARDS)
        self.assertEqual(match.turn_number, 1)
        self.assertEqual(match.current_player_index, 0)
        self.assertEqual(len(match.deck), TOTAL_CATALOG_CARDS)
        self.assertTrue(all(p.health > 0 for p in match.players))

    def test_version_counts_accepted_mutations(self):
        match = build_started_match(4)
        # three joins, one deal, four selections
        self.assertEqual(match.version, 8)

    def test_end_turn_before_setup_raises(self):
        match = Match(name="Empty")
        with self.assertRaises(MatchNotInitializedError):
            match.end_turn()


# =============================================================================
# Match: turns and cards
# =============================================================================

class TestMatchTurns(unittest.TestCase):
    """Drawing, playing, discarding and rotating turns."""

    def setUp(self):
        self.match = build_started_match(4)
        self.actor = self.match.players[0]

    def test_turn_draw(self):
        ok, _ = self.match.start_turn_draw(self.actor.id)

        self.assertTrue(ok)
        self.assertEqual(len(self.actor.hand), TURN_DRAW_COUNT)
        self.assertEqual(self.match.current_phase, MatchPhase.PLAYING_CARDS)
        self.assertFalse(self.match.start_turn_draw(self.actor.id)[0])

    def test_only_current_player_may_draw(self):
        ok, msg = self.match.start_turn_draw(self.match.players[1].id)
        self.assertFalse(ok)
        self.assertIn("not your turn", msg)

    def test_card_count_is_conserved(self):
        self.match.start_turn_draw(self.actor.id)
        for card in list(self.actor.hand):
            self.match.play_card(card.id, self.actor.id, self.match.players[1].id)
        self.match.draw_cards(5, self.match.players[2].id)

        self.assertEqual(self.match.total_cards, TOTAL_CATALOG_CARDS)

    def test_play_card_moves_card_to_discard(self):
        card = revolver()
        self.actor.hand.append(card)
        target = self.match.players[1]
        health = target.health

        ok, _ = self.match.play_card(card.id, self.actor.id, target.id)

        self.assertTrue(ok)
        self.assertEqual(target.health, health - 1)
        self.assertNotIn(card, self.actor.hand)
        self.assertEqual(self.match.discard_pile[-1], card)

    def test_failed_play_changes_nothing(self):
        before = self.match.to_dict()

        ok, _ = self.match.play_card("no-such-card", self.actor.id)

        self.assertFalse(ok)
        self.assertEqual(self.match.to_dict(), before)

    def test_weapon_once_per_turn(self):
        first, second = revolver(), revolver()
        self.actor.hand.extend([first, second])
        target = self.match.players[1].id

        self.assertTrue(self.match.play_card(first.id, self.actor.id, target)[0])
        version = self.match.version
        ok, msg = self.match.play_card(second.id, self.actor.id, target)

        self.assertFalse(ok)
        self.assertIn("already used a weapon", msg)
        self.assertEqual(self.match.version, version)
        self.assertIn(second, self.actor.hand)

        # Going round the table resets the flag
        for _ in range(len(self.match.players)):
            self.match.end_turn()
        self.assertIs(self.match.current_player, self.actor)
        self.assertFalse(self.actor.has_played_firefight)

    def test_weapon_without_target_is_consumed(self):
        card = revolver()
        self.actor.hand.append(card)
        healths = [p.health for p in self.match.players]

        ok, _ = self.match.play_card(card.id, self.actor.id, None)

        self.assertTrue(ok)
        self.assertEqual([p.health for p in self.match.players], healths)
        self.assertIn(card, self.match.discard_pile)

    def test_duplicate_equipment_is_rejected(self):
        self.actor.equipment.append(scope())
        card = scope()
        self.actor.hand.append(card)

        ok, msg = self.match.play_card(card.id, self.actor.id)

        self.assertFalse(ok)
        self.assertIn("already have Scope", msg)

    def test_played_equipment_is_discarded_and_stacks(self):
        first, second = scope(), scope()
        self.actor.hand.extend([first, second])
        attack_range = self.actor.attack_range

        self.assertTrue(self.match.play_card(first.id, self.actor.id)[0])
        self.assertTrue(self.match.play_card(second.id, self.actor.id)[0])

        self.assertEqual(self.actor.equipment, [])
        self.assertEqual(self.actor.attack_range, attack_range + 2)
        self.assertEqual(self.match.discard_pile[-2:], [first, second])

    def test_heal_and_draw_effects(self):
        self.actor.apply_damage(2)
        cigar = make_card("Don's Cigar", CardType.EQUIPMENT, CardEffect.heal(1))
        watch = make_card("Golden Watch", CardType.EQUIPMENT, CardEffect.draw(3))
        self.actor.hand.extend([cigar, watch])
        health = self.actor.health

        self.match.play_card(cigar.id, self.actor.id)
        self.match.play_card(watch.id, self.actor.id)

        self.assertEqual(self.actor.health, health + 1)
        self.assertEqual(len(self.actor.hand), 3)

    def test_end_turn_rotates(self):
        ok, _ = self.match.end_turn()

        self.assertTrue(ok)
        self.assertEqual(self.match.current_player_index, 1)
        self.assertEqual(self.match.turn_number, 2)
        self.assertEqual(self.match.current_phase, MatchPhase.DRAWING_CARDS)

    def test_end_turn_wraps_around(self):
        for _ in range(4):
            self.match.end_turn()
        self.assertEqual(self.match.current_player_index, 0)
        self.assertEqual(self.match.turn_number, 5)

    def test_eliminated_players_are_skipped(self):
        self.match.players[1].apply_damage(99)

        self.match.end_turn()

        self.assertEqual(self.match.current_player_index, 2)

    def test_discard_down_to_health(self):
        self.actor.health = 4
        self.actor.max_health = 4
        self.match.draw_cards(6, self.actor.id)

        ok, _ = self.match.end_turn()

        self.assertTrue(ok)
        self.assertEqual(self.match.current_phase, MatchPhase.DISCARDING)
        self.assertEqual(self.match.current_player_index, 0)

        ok, msg = self.match.discard_card(self.actor.id, self.actor.hand[0].id)
        self.assertTrue(ok)
        self.assertIn("1 more", msg)
        self.assertEqual(self.match.current_phase, MatchPhase.DISCARDING)

        ok, _ = self.match.discard_card(self.actor.id, self.actor.hand[0].id)
        self.assertTrue(ok)
        self.assertEqual(len(self.actor.hand), 4)
        self.assertEqual(self.match.current_player_index, 1)
        self.assertEqual(self.match.current_phase, MatchPhase.DRAWING_CARDS)
        self.assertEqual(len(self.match.discard_pile), 2)

    def test_discard_outside_discarding_phase(self):
        self.actor.hand.append(revolver())
        ok, _ = self.match.discard_card(self.actor.id, self.actor.hand[0].id)
        self.assertFalse(ok)

    def test_shield_expires_after_turn_end(self):
        card = dodge()
        self.actor.hand.append(card)

        self.match.play_card(card.id, self.actor.id)
        self.assertEqual(len(self.match.active_effects), 1)
        self.assertEqual(self.match.active_effects[0].type.kind, ActiveEffectKind.SHIELD)
        self.assertEqual(self.match.active_effects[0].player_id, self.actor.id)

        self.match.end_turn()
        self.assertEqual(self.match.active_effects, [])

    def test_effects_tick_once_per_turn_end(self):
        self.match.active_effects.append(
            ActiveEffect(type=EffectType.custom("Blocked"), player_id=self.actor.id, duration=2)
        )

        self.match.end_turn()
        self.assertEqual(self.match.active_effects[0].duration, 1)

        self.match.end_turn()
        self.assertEqual(self.match.active_effects, [])


# =============================================================================
# Match: targeting
# =============================================================================

class TestTargeting(unittest.TestCase):
    """Seat distance and weapon reach."""

    def test_distance_is_shortest_way_round(self):
        match = build_started_match(6)
        ids = [p.id for p in match.players]

        self.assertEqual(match.distance(ids[0], ids[1]), 1)
        self.assertEqual(match.distance(ids[0], ids[5]), 1)
        self.assertEqual(match.distance(ids[0], ids[3]), 3)
        self.assertEqual(match.distance(ids[1], ids[4]), 3)
        self.assertIsNone(match.distance(ids[0], "nobody"))

    def test_scope_extends_reach(self):
        match = build_started_match(6)
        actor = match.players[0]
        far = match.players[3]
        gun, sight = revolver(), scope()
        actor.hand.extend([gun, sight])

        self.assertTrue(match.can_target(actor.id, match.players[2].id, gun))
        self.assertFalse(match.can_target(actor.id, far.id, gun))

        ok, _ = match.play_card(sight.id, actor.id)
        self.assertTrue(ok)
        self.assertEqual(actor.attack_range, 2)

        self.assertTrue(match.can_target(actor.id, far.id, gun))

    def test_cannot_shoot_self(self):
        match = build_started_match(4)
        actor = match.players[0]
        self.assertFalse(match.can_target(actor.id, actor.id, revolver()))

    def test_cannot_target_eliminated_player(self):
        match = build_started_match(4)
        target = match.players[1]
        target.apply_damage(99)
        self.assertFalse(match.can_target(match.players[0].id, target.id, revolver()))

    def test_kidnap_reaches_one_seat(self):
        match = build_started_match(6)
        ties = make_card("Dirty Ties", CardType.ACTION, CardEffect.special(KIDNAP_TAG))
        actor = match.players[0]

        self.assertTrue(match.can_target(actor.id, match.players[1].id, ties))
        self.assertFalse(match.can_target(actor.id, match.players[2].id, ties))


# =============================================================================
# Match: pluggable rules
# =============================================================================

class TestPluggableRules(unittest.TestCase):
    """Win conditions and special effect handlers."""

    def test_default_match_never_ends_on_its_own(self):
        match = build_started_match(4)
        match.players[1].apply_damage(99)
        match.end_turn()

        self.assertEqual(match.status, MatchStatus.IN_PROGRESS)
        self.assertIsNone(match.winner)

    def test_custom_win_condition_finishes_match(self):
        match = build_started_match(4, win_condition=EliminationEndsMatch())
        actor, target = match.players[0], match.players[1]
        target.health = 1
        gun = revolver()
        actor.hand.append(gun)

        ok, _ = match.play_card(gun.id, actor.id, target.id)

        self.assertTrue(ok)
        self.assertEqual(match.status, MatchStatus.COMPLETED)
        self.assertEqual(match.current_phase, MatchPhase.FINISHED)
        self.assertEqual(match.winner.reason, "first blood")
        self.assertNotIn(target.id, match.winner.winner_ids)
        self.assertFalse(match.end_turn()[0])

    def test_registered_special_handler_runs(self):
        match = build_started_match(4)
        actor, victim = match.players[0], match.players[1]
        loot = revolver()
        victim.hand.append(loot)

        def kidnap(m, player, target_id):
            target = m.get_player(target_id)
            player.hand.append(target.hand.pop())

        match.special_effects.register(KIDNAP_TAG, kidnap)
        ties = make_card("Dirty Ties", CardType.ACTION, CardEffect.special(KIDNAP_TAG))
        actor.hand.append(ties)

        ok, _ = match.play_card(ties.id, actor.id, victim.id)

        self.assertTrue(ok)
        self.assertIn(loot, actor.hand)
        self.assertEqual(victim.hand, [])

    def test_unregistered_special_is_a_no_op(self):
        match = build_started_match(4)
        actor = match.players[0]
        duel = make_card("Showdown", CardType.ACTION, CardEffect.special("Duel"))
        actor.hand.append(duel)

        ok, _ = match.play_card(duel.id, actor.id, match.players[1].id)

        self.assertTrue(ok)
        self.assertIn(duel, match.discard_pile)

    def test_terminate_is_host_only(self):
        match = build_started_match(4)

        self.assertFalse(match.terminate("user-2")[0])
        ok, _ = match.terminate("user-0")

        self.assertTrue(ok)
        self.assertEqual(match.status, MatchStatus.COMPLETED)
        self.assertIsNone(match.winner)
        self.assertFalse(match.terminate("user-0")[0])


# =============================================================================
# Match: snapshots and views
# =============================================================================

class TestMatchSnapshots(unittest.TestCase):
    """Serialization and per-player views."""

    def test_round_trip(self):
        match = build_started_match(5)
        match.start_turn_draw(match.players[0].id)
        match.active_effects.append(
            ActiveEffect(type=EffectType.custom("Blocked"), player_id=match.players[2].id,
                         duration=3)
        )
        match.active_effects.append(
            ActiveEffect(type=EffectType(ActiveEffectKind.RANGE_BOOST),
                         player_id=match.players[1].id, duration=2)
        )
        data = match.to_dict()

        restored = Match.from_dict(data)

        self.assertEqual(restored.to_dict(), data)
        self.assertEqual(restored.players[0].character_options,
                         match.players[0].character_options)

    def test_lobby_round_trip(self):
        match = Match.create("Lobby", "host", "Host", max_players=6)
        data = match.to_dict()
        self.assertIsNone(data["roles"])
        self.assertEqual(Match.from_dict(data).to_dict(), data)

    def test_missing_field_raises(self):
        data = build_started_match(4).to_dict()
        del data["deck"]
        with self.assertRaises(SnapshotError):
            Match.from_dict(data)

    def test_role_mismatch_raises(self):
        data = build_started_match(4).to_dict()
        data["roles"] = ["DON", "DON", "FBI_AGENT", "FBI_AGENT"]
        with self.assertRaises(SnapshotError):
            Match.from_dict(data)

    def test_unknown_role_raises(self):
        data = build_lobby(4).to_dict()
        data["roles"][0] = "KINGPIN"
        with self.assertRaises(SnapshotError):
            Match.from_dict(data)

    def test_unknown_character_raises(self):
        data = build_started_match(4).to_dict()
        data["players"][0]["selected_character"] = "wizard"
        with self.assertRaises(SnapshotError):
            Match.from_dict(data)

    def test_malformed_player_raises(self):
        data = build_started_match(4).to_dict()
        data["players"][1] = "garbage"
        with self.assertRaises(SnapshotError):
            Match.from_dict(data)

    def test_current_player_out_of_range_raises(self):
        data = build_started_match(4).to_dict()
        data["current_player_index"] = 9
        with self.assertRaises(SnapshotError):
            Match.from_dict(data)

    def test_player_view_hides_secrets(self):
        match = build_started_match(4)
        for player in match.players:
            player.hand.append(revolver())
        viewer = next(p for p in match.players if p.role == Role.FBI_AGENT)

        state = match.get_state_for_player(viewer.user_id)

        self.assertNotIn("deck", state)
        self.assertEqual(state["deck_count"], TOTAL_CATALOG_CARDS)
        for seat in state["players"]:
            self.assertEqual(seat["hand_count"], 1)
            if seat["id"] == viewer.id:
                self.assertEqual(len(seat["hand"]), 1)
                self.assertEqual(seat["role"], "FBI_AGENT")
            else:
                self.assertEqual(seat["hand"], [])
                if seat["id"] == match.players[DON_SEAT].id:
                    self.assertEqual(seat["role"], "DON")
                else:
                    self.assertIsNone(seat["role"])

    def test_available_actions_in_view(self):
        match = build_started_match(4)
        don = match.players[DON_SEAT]
        agent = next(p for p in match.players if p.role == Role.FBI_AGENT)
        don.ammo = 0
        agent.ammo = 2

        self.assertEqual(match.get_state_for_player(don.user_id)["available_actions"], ["HEAL"])
        self.assertEqual(
            match.get_state_for_player(agent.user_id)["available_actions"],
            ["ATTACK", "INVESTIGATE"]
        )
        self.assertEqual(match.get_state_for_player("nobody")["available_actions"], [])

    def test_turn_flag_in_view(self):
        match = build_started_match(4)
        self.assertTrue(match.get_state_for_player("user-0")["is_your_turn"])
        self.assertFalse(match.get_state_for_player("user-1")["is_your_turn"])


def run_tests():
    """Run all tests."""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    test_classes = [
        TestDeck,
        TestCards,
        TestCatalog,
        TestPlayer,
        TestMatchSetup,
        TestMatchTurns,
        TestTargeting,
        TestPluggableRules,
        TestMatchSnapshots,
    ]

    for test_class in test_classes:
        tests = loader.loadTestsFromTestCase(test_class)
        suite.addTests(tests)

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return result.wasSuccessful()


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)

"""Per-game rules engines.

A Game's ``details.type`` selects the engine that owns the shape of its
plays' ``play_data``. Games without an entry here keep free-form play data.
"""
from pairplay.services.games.bulls_and_cows import BullsAndCowsRules

RULES = {
    BullsAndCowsRules.game_type: BullsAndCowsRules(),
}


def rules_for(game):
    if game is None:
        return None
    return RULES.get(game.game_type)

# guild_planner/services/exceptions.py

class InvariantViolation(RuntimeError):
    """Stored data breaks an assumption every decision in the engine relies on.

    Examples: two membership rows for one (guild, user) pair, an override
    naming a permission outside the catalog, two roster entries for one
    actor on one event. Never caught inside the engine.
    """

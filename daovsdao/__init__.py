"""
DaoVsDao — Pyramid Grid Game Engine

Players occupy cells of triangular grids ("realms"), accrue a yield-bearing
token balance, and swap toward the apex, slashing weaker occupants on the
way. Third parties can sponsor a player and hold a transferable certificate
for their share of that player's sponsorship pool.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                              DAOVSDAO                                    │
    │                                                                          │
    │  FACADE                                                                  │
    │    game.py          DaoVsDao: transactions, setters, read model         │
    │    certificate.py   Sponsorship certificate registry (NFT receipts)     │
    │                                                                          │
    │  ENGINES                                                                 │
    │    placement.py     First entry, participation fee, grid growth         │
    │    swap.py          Adjacency rules, cooldowns, slash settlement        │
    │    sponsorship.py   Proportional pool shares                            │
    │                                                                          │
    │  STATE                                                                   │
    │    grid.py          Multi-realm triangular grid                         │
    │    registry.py      Players and the identity ↔ cell index              │
    │    ledger.py        Value ledgers and the ownership gate                │
    │    state.py         State aggregate and yield accrual                   │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    config.py  observability.py  events.py  errors.py  schema.py         │
    │    clock.py   invariants.py     scenario.py  cli.py                     │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Amounts are integers in the smallest unit (1 token = 10**18). Every rejected
call raises a GameError carrying the exact rejection reason and leaves the
game untouched.
"""

__version__ = "0.3.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import engine modules on first access."""

    if name in ("DaoVsDao", "PlayerView"):
        from daovsdao import game
        return getattr(game, name)

    if name in ("SponsorshipCertificate", "CertificateData", "CertificateIssuer",
                "SharesRedeemer", "MetadataRenderer"):
        from daovsdao import certificate
        return getattr(certificate, name)

    if name in ("Coords", "Grid"):
        from daovsdao import grid
        return getattr(grid, name)

    if name in ("Clock", "SystemClock", "ManualClock"):
        from daovsdao import clock
        return getattr(clock, name)

    if name in ("GameError", "AuthorizationError", "BoundsError", "StateError",
                "InvariantViolation"):
        from daovsdao import errors
        return getattr(errors, name)

    if name in ("GameConfig", "ConfigManager", "get_config", "get_config_manager"):
        from daovsdao import config
        return getattr(config, name)

    if name in ("ScenarioRunner", "ScenarioError", "run_scenario"):
        from daovsdao import scenario
        return getattr(scenario, name)

    if name in ("WAD", "ZERO_ADDRESS", "parse_ether", "format_ether"):
        from daovsdao import core
        return getattr(core, name)

    raise AttributeError(f"module 'daovsdao' has no attribute {name!r}")

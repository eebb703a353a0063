"""
Scenario runner.

A scenario is a YAML document describing accounts, an optional config
overlay and a list of steps. Steps run against a fresh game wired to a
certificate registry, on a ManualClock, so a scenario replays identically
every time.

    name: slash-the-apex
    accounts:
      owner: "0x00000000000000000000000000000000000000a0"
      alice: "0x00000000000000000000000000000000000000a1"
    steps:
      - {op: add_realm, caller: owner}
      - {op: place_user, caller: alice, coords: [0, 0, 0]}
      - {op: advance, duration: 1h}
      - {op: swap, caller: alice, coords: [0, 0, 0], expect_error: "Swap too far from user coords"}
      - {op: expect, balances: {owner: "1000000000000000000"}}

Token amounts in steps are whole-token strings ("0.25"); expected values in
``expect`` steps are exact smallest-unit integers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from daovsdao.certificate import SponsorshipCertificate
from daovsdao.clock import ManualClock
from daovsdao.config import GameConfig
from daovsdao.core import SCHEMA_DIR, load_yaml, parse_ether
from daovsdao.errors import GameError
from daovsdao.events import Receipt
from daovsdao.game import DaoVsDao
from daovsdao.invariants import InvariantChecker
from daovsdao.observability import GameLayer, get_logger, timed_operation
from daovsdao.schema import validate_against_schema

logger = get_logger("runner", GameLayer.SCENARIO)


class ScenarioError(Exception):
    """Scenario file is invalid or its expectations did not hold."""

    def __init__(self, message: str, step: Optional[int] = None):
        self.step = step
        prefix = f"step {step}: " if step is not None else ""
        super().__init__(prefix + message)


def scenario_schema_path(schemas_dir: Path = SCHEMA_DIR) -> Path:
    return schemas_dir / "scenario.schema.json"


@dataclass
class StepResult:
    index: int
    op: str
    ok: bool
    reason: str = ""
    events: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "op": self.op,
            "ok": self.ok,
            "reason": self.reason,
            "events": self.events,
        }


@dataclass
class ScenarioResult:
    name: str
    steps: List[StepResult]
    final_state: Dict[str, Any]
    digest: str
    violations: List[str]

    @property
    def passed(self) -> bool:
        return not self.violations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "digest": self.digest,
            "violations": self.violations,
            "steps": [s.to_dict() for s in self.steps],
            "final_state": self.final_state,
        }


class ScenarioRunner:
    """Executes one scenario document."""

    def __init__(self, document: Dict[str, Any]):
        errors = validate_against_schema(document, scenario_schema_path())
        if errors:
            raise ScenarioError(f"Invalid scenario: {errors[0]}")
        self.document = document
        self.name = document.get("name", "scenario")
        self.accounts: Dict[str, str] = dict(document["accounts"])
        if "owner" not in self.accounts:
            raise ScenarioError("Scenario accounts must include 'owner'")

        config = GameConfig.from_dict(document.get("config"))
        self.clock = ManualClock(int(document.get("start_time", 0)))
        self.game = DaoVsDao(self.accounts["owner"], config=config, clock=self.clock)
        self.certificates = SponsorshipCertificate(self.accounts["owner"])
        self.certificates.set_sponsorship_certificate_manager(self.accounts["owner"], self.game)
        self.game.set_sponsorship_certificate_emitter(self.accounts["owner"], self.certificates)

        self._ops: Dict[str, Callable[[Dict[str, Any]], Optional[Receipt]]] = {
            "add_realm": lambda s: self.game.add_realm(self._who(s["caller"])),
            "add_row": lambda s: self.game.add_row(self._who(s["caller"]), int(s["realm"])),
            "place_user": self._place_user,
            "swap": lambda s: self.game.swap(self._who(s["caller"]), s["coords"]),
            "transfer": lambda s: self.game.transfer(
                self._who(s["caller"]), self._who(s["to"]), parse_ether(s["amount"])
            ),
            "sponsor": lambda s: self.game.sponsor(
                self._who(s["caller"]), self._who(s["beneficiary"]), parse_ether(s["amount"])
            ),
            "redeem_certificate": lambda s: self.certificates.redeem_certificate(
                self._who(s["caller"]), int(s["certificate"]),
                int(s["shares"]) if s.get("shares") is not None else None,
            ),
            "transfer_certificate": lambda s: self.certificates.transfer_from(
                self._who(s["caller"]), self._who(s["caller"]), self._who(s["to"]), int(s["certificate"])
            ),
            "set": self._set_parameter,
            "fund_native": self._fund_native,
            "advance": lambda s: self._advance(s["duration"]),
            "at": lambda s: self._at(int(s["time"])),
            "expect": self._expect,
        }

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ScenarioRunner":
        path = Path(path)
        if not path.exists():
            raise ScenarioError(f"Scenario file not found: {path}")
        document = load_yaml(path)
        if not isinstance(document, dict):
            raise ScenarioError(f"Scenario must be a mapping: {path}")
        return cls(document)

    # ── helpers ───────────────────────────────────────────────────────────

    def _who(self, name: str) -> str:
        return self.accounts.get(name, name)

    def _place_user(self, step: Dict[str, Any]) -> Receipt:
        referrer = step.get("referrer")
        return self.game.place_user(
            self._who(step["caller"]),
            step["coords"],
            referrer=self._who(referrer) if referrer else None,
            value=parse_ether(step.get("value", "0")),
        )

    def _set_parameter(self, step: Dict[str, Any]) -> Receipt:
        setters = {
            "slashing_percentage": self.game.set_slashing_percentage,
            "slashing_tax": self.game.set_slashing_tax,
            "participation_fee": lambda c, v: self.game.set_participation_fee(c, parse_ether(v)),
            "percentage_for_referrer": self.game.set_percentage_for_referrer,
        }
        setter = setters.get(step["parameter"])
        if setter is None:
            raise ScenarioError(f"Unknown parameter: {step['parameter']}")
        return setter(self._who(step["caller"]), step["value"])

    def _fund_native(self, step: Dict[str, Any]) -> None:
        self.game.fund_native(self._who(step["account"]), parse_ether(step["amount"]))

    def _advance(self, duration: Any) -> None:
        self.clock.advance(duration)

    def _at(self, timestamp: int) -> None:
        self.clock.set(timestamp)

    def _expect(self, step: Dict[str, Any]) -> None:
        failures = []
        for name, expected in (step.get("balances") or {}).items():
            actual = self.game.balance_of(self._who(name))
            if actual != int(expected):
                failures.append(f"balance of {name}: expected {expected}, got {actual}")
        for name, expected in (step.get("sponsorships") or {}).items():
            actual = self.game.get_player_data(self._who(name)).sponsorships
            if actual != int(expected):
                failures.append(f"sponsorships of {name}: expected {expected}, got {actual}")
        for name, expected in (step.get("shares") or {}).items():
            actual = self.game.sponsorship_shares(self._who(name))
            if actual != int(expected):
                failures.append(f"shares of {name}: expected {expected}, got {actual}")
        for name, coords in (step.get("cells") or {}).items():
            actual = self.game.cell_at(coords)
            if actual != self._who(name):
                failures.append(f"cell {coords}: expected {name}, got {actual}")
        if failures:
            raise ScenarioError("; ".join(failures))

    # ── run ───────────────────────────────────────────────────────────────

    @timed_operation(logger, "scenario_run")
    def run(self) -> ScenarioResult:
        results: List[StepResult] = []
        for index, step in enumerate(self.document.get("steps", [])):
            op = step["op"]
            handler = self._ops.get(op)
            if handler is None:
                raise ScenarioError(f"Unknown op: {op}", step=index)
            expected_error = step.get("expect_error")
            try:
                receipt = handler(step)
            except GameError as e:
                if expected_error is None:
                    raise ScenarioError(f"{op} rejected: {e.reason}", step=index) from e
                if e.reason != expected_error:
                    raise ScenarioError(
                        f"{op} rejected with {e.reason!r}, expected {expected_error!r}", step=index
                    ) from e
                results.append(StepResult(index, op, ok=False, reason=e.reason))
                continue
            except ScenarioError as e:
                raise ScenarioError(str(e), step=index) from e
            except ValueError as e:
                raise ScenarioError(f"{op}: {e}", step=index) from e
            if expected_error is not None:
                raise ScenarioError(f"{op} succeeded, expected {expected_error!r}", step=index)
            events = [e.event_type for e in receipt.events] if receipt is not None else []
            results.append(StepResult(index, op, ok=True, events=events))

        violations = InvariantChecker.check_all(self.game.state)
        logger.info("Scenario finished", scenario=self.name, steps=len(results),
                    violations=len(violations))
        return ScenarioResult(
            name=self.name,
            steps=results,
            final_state=self.game.export_state(),
            digest=self.game.state_digest(),
            violations=violations,
        )


def run_scenario(path: Union[str, Path]) -> ScenarioResult:
    return ScenarioRunner.from_file(path).run()

"""Counterexample search -- discovers gaps in implementation or tests.

This module runs independently of the test suite.  It walks the
contract from ``build_contract`` and systematically searches for:

1. Postcondition violations: inputs where the implementation doesn't
   match the contract's expected output.
2. Error condition violations: inputs that should raise but don't (or
   raise the wrong exception).
3. Property violations: algebraic relationships that fail for some
   input combination.
4. Ownership leaks: task operations that reach another user's task.

Run from the project root::

    python -m validation.counterexample_search
"""
from __future__ import annotations

import itertools
import string
import sys
from dataclasses import dataclass, field
from datetime import date

import auth
import policy
from auth import create_token, decode_token, hash_password, verify_password
from contract import ServiceContract, build_contract
from db import Database
from errors import TaskNotFoundError
from models import Priority, Status, TaskPayload
from policy import MIN_PASSWORD_LENGTH, SPECIAL_CHARACTERS, validate_password
from store import TaskStore, UserStore

SEARCH_ROUNDS = 4
SEARCH_SECRET = "counterexample-secret-0123456789abcdef"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class Counterexample:
    category: str
    operation: str
    inputs: tuple
    expected: str
    actual: str
    description: str


@dataclass
class SearchReport:
    counterexamples: list[Counterexample] = field(default_factory=list)
    checks_run: int = 0

    @property
    def passed(self) -> bool:
        return len(self.counterexamples) == 0

    def summary(self) -> str:
        lines = [
            "Counterexample Search Report",
            "=" * 40,
            f"Total checks: {self.checks_run}",
            f"Counterexamples found: {len(self.counterexamples)}",
        ]
        if self.counterexamples:
            lines.append("")
            for i, cx in enumerate(self.counterexamples, 1):
                lines.append(f"  [{i}] {cx.category} / {cx.operation}")
                lines.append(f"      Inputs:   {cx.inputs}")
                lines.append(f"      Expected: {cx.expected}")
                lines.append(f"      Actual:   {cx.actual}")
                lines.append(f"      {cx.description}")
        else:
            lines.append("\nNo counterexamples found -- all checks passed.")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Search: password policy postconditions
# ---------------------------------------------------------------------------

def _policy_candidates() -> list[str]:
    """Every combination of the four character classes at several lengths."""
    pools = ["a", "A", "7", "!"]
    out = [""]
    for mask in itertools.product([False, True], repeat=len(pools)):
        base = "".join(c for c, keep in zip(pools, mask) if keep)
        for length in (MIN_PASSWORD_LENGTH - 1, MIN_PASSWORD_LENGTH, 40):
            filler = (base or " ") * length
            out.append(filler[:length])
    out.append("é" * MIN_PASSWORD_LENGTH)
    out.append("Secret1 ")
    return out


def search_policy_postconditions(
    contract: ServiceContract,
) -> tuple[list[Counterexample], int]:
    """Verify validate_password postconditions over class combinations."""
    cxs: list[Counterexample] = []
    checks = 0

    for pw in _policy_candidates():
        checks += 1
        result = validate_password(pw)
        for post in contract.operations["validate_password"].postconditions:
            if not post.check(pw, result):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="validate_password",
                    inputs=(pw,),
                    expected=post.description,
                    actual=f"violation={result.violation}",
                    description=f"Postcondition '{post.name}' violated",
                ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: hash_password postconditions and errors
# ---------------------------------------------------------------------------

def search_hash_password(
    contract: ServiceContract,
) -> tuple[list[Counterexample], int]:
    """Verify hash_password postconditions and error conditions."""
    cxs: list[Counterexample] = []
    checks = 0
    op = contract.operations["hash_password"]

    valid_passwords = [
        "Secret1!",
        "P@ssw0rd!123",
        "x" * 50,
        "Aa1!" + "é" * 80,
    ]

    for pw in valid_passwords:
        checks += 1
        try:
            result = hash_password(pw, rounds=SEARCH_ROUNDS)
        except Exception as e:
            cxs.append(Counterexample(
                category="unexpected_error",
                operation="hash_password",
                inputs=(pw,),
                expected="hash string",
                actual=f"{type(e).__name__}: {e}",
                description="hash_password raised unexpected exception",
            ))
            continue

        for post in op.postconditions:
            if not post.check(pw, result):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="hash_password",
                    inputs=(pw,),
                    expected=post.description,
                    actual=f"result={result!r}",
                    description=f"Postcondition '{post.name}' violated",
                ))

    for ec in op.error_conditions:
        if not ec.trigger(""):
            continue
        checks += 1
        try:
            result = hash_password("", rounds=SEARCH_ROUNDS)
            cxs.append(Counterexample(
                category="missing_error",
                operation="hash_password",
                inputs=("",),
                expected=ec.exception.__name__,
                actual=f"result={result!r}",
                description=f"Error '{ec.name}' should have triggered",
            ))
        except ec.exception:
            pass
        except Exception as e:
            cxs.append(Counterexample(
                category="wrong_error",
                operation="hash_password",
                inputs=("",),
                expected=ec.exception.__name__,
                actual=f"{type(e).__name__}: {e}",
                description=f"Wrong exception type for '{ec.name}'",
            ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: verify_password properties
# ---------------------------------------------------------------------------

def search_verify_password_properties(
    contract: ServiceContract,
) -> tuple[list[Counterexample], int]:
    """Verify hash/verify roundtrip and mutation properties."""
    cxs: list[Counterexample] = []
    checks = 0

    test_passwords = ["Secret1!", "Other2@pass", "correct-Horse-9", "Aa1!" + "z" * 80]

    for prop in contract.operations["verify_password"].properties:
        for pw in test_passwords:
            checks += 1
            if not prop.check(auth, pw):
                cxs.append(Counterexample(
                    category="property_violation",
                    operation="verify_password",
                    inputs=(pw,),
                    expected=prop.description,
                    actual="False",
                    description=f"Property '{prop.name}' violated",
                ))

    # Wrong password: verify(other, hash(pw)) must be False
    for pw, other in itertools.combinations(test_passwords, 2):
        checks += 1
        hashed = hash_password(pw, rounds=SEARCH_ROUNDS)
        if verify_password(other, hashed):
            cxs.append(Counterexample(
                category="property_violation",
                operation="verify_password",
                inputs=(pw, other),
                expected="verify(other, hash(pw)) == False",
                actual="True",
                description="Wrong-password property violated",
            ))

    for bad_hash in ("no-dollar-sign", "salt$digest", "$2b$04$short"):
        checks += 1
        try:
            verify_password("anything", bad_hash)
            cxs.append(Counterexample(
                category="missing_error",
                operation="verify_password",
                inputs=("anything", bad_hash),
                expected="ValueError",
                actual="no exception",
                description="Malformed hash should raise ValueError",
            ))
        except ValueError:
            pass
        except Exception as e:
            cxs.append(Counterexample(
                category="wrong_error",
                operation="verify_password",
                inputs=("anything", bad_hash),
                expected="ValueError",
                actual=type(e).__name__,
                description="Wrong exception for malformed hash",
            ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: token create/decode properties
# ---------------------------------------------------------------------------

def search_token_properties(
    contract: ServiceContract,
) -> tuple[list[Counterexample], int]:
    """Verify token creation/decoding postconditions and properties."""
    cxs: list[Counterexample] = []
    checks = 0
    secret = SEARCH_SECRET
    ttl = contract.token_ttl

    names = ["alice", "admin", "test-user-123", "a" * 64, "名前"]

    for prop in contract.operations["create_token"].properties:
        for name in names:
            checks += 1
            try:
                ok = prop.check(auth, name)
            except Exception as e:
                ok = False
                actual = f"{type(e).__name__}: {e}"
            else:
                actual = str(ok)
            if not ok:
                cxs.append(Counterexample(
                    category="property_violation",
                    operation="create_token/decode_token",
                    inputs=(name,),
                    expected=prop.description,
                    actual=actual,
                    description=f"Property '{prop.name}' violated",
                ))

    for uid, name in enumerate(names, 1):
        checks += 1
        token = create_token(uid, name, secret, ttl=ttl)
        for post in contract.operations["create_token"].postconditions:
            if not post.check(uid, name, secret, token):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="create_token",
                    inputs=(uid, name),
                    expected=post.description,
                    actual=f"token={token!r}",
                    description=f"Postcondition '{post.name}' violated",
                ))
        claims = decode_token(token, secret)
        for post in contract.operations["decode_token"].postconditions:
            if not post.check(token, secret, claims):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="decode_token",
                    inputs=(uid, name),
                    expected=post.description,
                    actual=f"claims={claims!r}",
                    description=f"Postcondition '{post.name}' violated",
                ))

    # Wrong secret, expired and malformed tokens must all be rejected
    rejected = [
        (create_token(1, "alice", secret), "wrong-secret-0123456789abcdef0123", "wrong secret"),
        (create_token(1, "alice", secret, ttl=-1), secret, "expired"),
        (create_token(1, "alice", secret, ttl=0), secret, "zero lifetime"),
        ("notokenhere", secret, "malformed"),
        ("", secret, "empty"),
        ("...", secret, "malformed"),
    ]
    for token, key, label in rejected:
        checks += 1
        try:
            decode_token(token, key)
            cxs.append(Counterexample(
                category="missing_error",
                operation="decode_token",
                inputs=(token, label),
                expected="ValueError",
                actual="no exception",
                description=f"{label.capitalize()} token should be rejected",
            ))
        except ValueError:
            pass

    for ec in contract.operations["create_token"].error_conditions:
        for args in ((1, "", secret), (1, "alice", "")):
            if not ec.trigger(*args):
                continue
            checks += 1
            try:
                create_token(*args)
                cxs.append(Counterexample(
                    category="missing_error",
                    operation="create_token",
                    inputs=args,
                    expected=ec.exception.__name__,
                    actual="no exception",
                    description=f"Error '{ec.name}' should have triggered",
                ))
            except ec.exception:
                pass

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: ownership isolation
# ---------------------------------------------------------------------------

def search_ownership_isolation(
    contract: ServiceContract,
) -> tuple[list[Counterexample], int]:
    """Check that no user can read, update or delete another's task."""
    cxs: list[Counterexample] = []
    checks = 0

    db = Database.from_url("sqlite://")
    db.create_schema()
    users = UserStore(db, bcrypt_rounds=SEARCH_ROUNDS)
    tasks = TaskStore(db)

    owners = ["alice", "bob", "carol"]
    for name in owners:
        users.register(name, "Secret1!")

    owned: dict[str, list[int]] = {name: [] for name in owners}
    for name, priority, status in itertools.product(owners, Priority, Status):
        payload = TaskPayload(
            title=f"{name}-{priority.name}-{status.name}",
            priority=priority,
            status=status,
            due_date=date(2026, 1, 1),
        )
        owned[name].append(tasks.create(name, payload))

    for name in owners:
        checks += 1
        listed = [t.id for t in tasks.list(name)]
        if listed != owned[name]:
            cxs.append(Counterexample(
                category="ownership_leak",
                operation="list_tasks",
                inputs=(name,),
                expected=f"ids={owned[name]}",
                actual=f"ids={listed}",
                description="Listing returned tasks the caller does not own",
            ))

    foreign_edit = TaskPayload(title="intruder edit")
    for intruder, victim in itertools.permutations(owners, 2):
        for task_id in owned[victim]:
            for op_name, call in (
                ("update_task", lambda: tasks.update(intruder, task_id, foreign_edit)),
                ("delete_task", lambda: tasks.delete(intruder, task_id)),
            ):
                checks += 1
                try:
                    call()
                    cxs.append(Counterexample(
                        category="ownership_leak",
                        operation=op_name,
                        inputs=(intruder, task_id),
                        expected="TaskNotFoundError",
                        actual="no exception",
                        description=f"{intruder} reached a task owned by {victim}",
                    ))
                except TaskNotFoundError:
                    pass

    db.dispose()
    return cxs, checks


# ---------------------------------------------------------------------------
# Top-level runner
# ---------------------------------------------------------------------------

def run_search() -> SearchReport:
    """Run complete counterexample search."""
    contract = build_contract(bcrypt_rounds=SEARCH_ROUNDS)
    report = SearchReport()

    for search_fn in (
        search_policy_postconditions,
        search_hash_password,
        search_verify_password_properties,
        search_token_properties,
        search_ownership_isolation,
    ):
        cxs, checks = search_fn(contract)
        report.counterexamples.extend(cxs)
        report.checks_run += checks

    # Determinism of the policy is checked over printable ASCII pairs.
    for prop in contract.operations["validate_password"].properties:
        for a, b in itertools.product(string.ascii_letters[:4], SPECIAL_CHARACTERS):
            pw = (a + b) * MIN_PASSWORD_LENGTH
            report.checks_run += 1
            if not prop.check(policy, pw):
                report.counterexamples.append(Counterexample(
                    category="property_violation",
                    operation="validate_password",
                    inputs=(pw,),
                    expected=prop.description,
                    actual="False",
                    description=f"Property '{prop.name}' violated",
                ))

    return report


def main() -> None:
    """Run counterexample search and report results."""
    print("Running task service counterexample search...\n")
    report = run_search()
    print(report.summary())

    if not report.passed:
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Executable contract for the task service.

Defines, in machine-readable form:
- Record rules: named predicates every stored user and created task
  must satisfy before it is written
- Operation contracts: pre/postconditions, error conditions and
  algebraic properties of the policy, hashing and token functions
- Branch map: every decision point in the implementation

Validation tools iterate over this module to generate conformance
tests and search for counterexamples.

Layers
------
Rule               named validation predicate over a record
OperationContract  per-operation contract (pre/post/error/properties)
BranchPoint        every decision point white-box tests must cover
ServiceContract    the full contract for a configured service
build_contract()   constructs a ServiceContract for a configuration
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable

from auth import DEFAULT_BCRYPT_ROUNDS, DEFAULT_TOKEN_TTL
from models import Priority, Status
from policy import MIN_PASSWORD_LENGTH, PASSWORD_RULES, PasswordRule


# ---------------------------------------------------------------------------
# Rule: a named, executable predicate over a record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rule:
    """A named validation rule for stored records."""

    id: str
    name: str
    description: str
    check: Callable[[Any], bool]


def _field(record: Any, key: str) -> Any:
    if isinstance(record, dict):
        return record.get(key)
    return getattr(record, key, None)


# ---------------------------------------------------------------------------
# User record rules
# ---------------------------------------------------------------------------

def _user_has_name(u: Any) -> bool:
    name = _field(u, "name")
    return isinstance(name, str) and bool(name)


def _user_hash_is_bcrypt(u: Any) -> bool:
    h = _field(u, "password_hash") or ""
    parts = h.split("$")
    return h.startswith("$2") and len(parts) == 4 and len(parts[3]) == 53


USER_RULES: list[Rule] = [
    Rule(
        id="USER-NAME",
        name="user_has_name",
        description="User must have a non-empty name",
        check=_user_has_name,
    ),
    Rule(
        id="USER-HASH",
        name="user_hash_is_bcrypt",
        description="Credential must be a bcrypt hash ($2x$cost$salt+digest)",
        check=_user_hash_is_bcrypt,
    ),
]


# ---------------------------------------------------------------------------
# Task record rules (applied on create)
# ---------------------------------------------------------------------------

def _task_has_title(t: Any) -> bool:
    title = _field(t, "title")
    return isinstance(title, str) and bool(title)


def _task_priority_valid(t: Any) -> bool:
    return _field(t, "priority") in {p.value for p in Priority}


def _task_status_valid(t: Any) -> bool:
    return _field(t, "status") in {s.value for s in Status}


def _task_due_date_is_date(t: Any) -> bool:
    return isinstance(_field(t, "due_date"), date)


def _task_has_owner(t: Any) -> bool:
    owner = _field(t, "owner_id")
    return isinstance(owner, int) and owner > 0


TASK_RULES: list[Rule] = [
    Rule(
        id="TASK-TITLE",
        name="task_has_title",
        description="Task must have a non-empty title",
        check=_task_has_title,
    ),
    Rule(
        id="TASK-PRIORITY",
        name="task_priority_valid",
        description="Priority must be 1 (low), 2 (medium) or 3 (high)",
        check=_task_priority_valid,
    ),
    Rule(
        id="TASK-STATUS",
        name="task_status_valid",
        description="Status must be 1 (pending), 2 (in progress) or 3 (completed)",
        check=_task_status_valid,
    ),
    Rule(
        id="TASK-DUE-DATE",
        name="task_due_date_is_date",
        description="Due date must be a calendar date",
        check=_task_due_date_is_date,
    ),
    Rule(
        id="TASK-OWNER",
        name="task_has_owner",
        description="Task must reference its owner's numeric id",
        check=_task_has_owner,
    ),
]


# ---------------------------------------------------------------------------
# Validation report
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    rule_id: str
    rule_name: str
    passed: bool
    description: str


@dataclass(frozen=True)
class ValidationReport:
    results: list[ValidationResult]

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> list[ValidationResult]:
        return [r for r in self.results if not r.passed]

    def summary(self) -> str:
        total = len(self.results)
        failed = len(self.failures)
        if failed == 0:
            return f"All {total} rules passed"
        lines = [f"{failed}/{total} rules failed:"]
        for f in self.failures:
            lines.append(f"  [{f.rule_id}] {f.rule_name}: {f.description}")
        return "\n".join(lines)


def _run_rules(rules: list[Rule], record: Any) -> ValidationReport:
    results = []
    for rule in rules:
        try:
            passed = rule.check(record)
        except Exception:
            passed = False
        results.append(
            ValidationResult(
                rule_id=rule.id,
                rule_name=rule.name,
                passed=passed,
                description=rule.description,
            )
        )
    return ValidationReport(results=results)


def validate_user_record(user: Any) -> ValidationReport:
    """Run all user rules against a record about to be stored."""
    return _run_rules(USER_RULES, user)


def validate_task_record(task: Any) -> ValidationReport:
    """Run all task rules against a record about to be created."""
    return _run_rules(TASK_RULES, task)


# ---------------------------------------------------------------------------
# Contract building blocks (operation-level)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Precondition:
    name: str
    description: str
    check: Callable[..., bool]


@dataclass(frozen=True)
class Postcondition:
    name: str
    description: str
    check: Callable[..., bool]


@dataclass(frozen=True)
class ErrorCondition:
    name: str
    description: str
    trigger: Callable[..., bool]
    exception: type


@dataclass(frozen=True)
class AlgebraicProperty:
    name: str
    description: str
    arity: int
    check: Callable[..., bool]


@dataclass(frozen=True)
class OperationContract:
    name: str
    preconditions: list[Precondition]
    postconditions: list[Postcondition]
    error_conditions: list[ErrorCondition]
    properties: list[AlgebraicProperty]


@dataclass(frozen=True)
class BranchPoint:
    """A decision point in the implementation that must be exercised."""

    id: str
    description: str
    condition: str
    operation: str


@dataclass(frozen=True)
class ServiceContract:
    """Complete contract for the task service."""

    min_password_length: int
    bcrypt_rounds: int
    token_ttl: int
    password_rules: list[PasswordRule]
    operations: dict[str, OperationContract]
    branches: list[BranchPoint]
    user_rules: list[Rule]
    task_rules: list[Rule]

    @property
    def all_properties(self) -> list[tuple[str, AlgebraicProperty]]:
        out: list[tuple[str, AlgebraicProperty]] = []
        for name, op in self.operations.items():
            for prop in op.properties:
                out.append((name, prop))
        return out

    @property
    def all_postconditions(self) -> list[tuple[str, Postcondition]]:
        out: list[tuple[str, Postcondition]] = []
        for name, op in self.operations.items():
            for post in op.postconditions:
                out.append((name, post))
        return out

    def branches_for(self, operation: str) -> list[BranchPoint]:
        return [b for b in self.branches if b.operation == operation]


# ---------------------------------------------------------------------------
# Branch map
# ---------------------------------------------------------------------------

BRANCHES: list[BranchPoint] = [
    # Password policy
    BranchPoint("POLICY-SHORT", "Password shorter than minimum rejected",
                "len(candidate) < min_length", "validate_password"),
    BranchPoint("POLICY-NO-LOWER", "Password without lowercase rejected",
                "no [a-z] after length passed", "validate_password"),
    BranchPoint("POLICY-NO-UPPER", "Password without uppercase rejected",
                "no [A-Z] after lowercase passed", "validate_password"),
    BranchPoint("POLICY-NO-DIGIT", "Password without digit rejected",
                "no [0-9] after uppercase passed", "validate_password"),
    BranchPoint("POLICY-NO-SPECIAL", "Password without special character rejected",
                "no special char after digit passed", "validate_password"),
    BranchPoint("POLICY-OK", "Password satisfies every rule",
                "all rules pass", "validate_password"),
    # Hashing
    BranchPoint("HASH-EMPTY", "Empty password rejected by hasher",
                "password == ''", "hash_password"),
    BranchPoint("HASH-OK", "Password hashed with bcrypt",
                "password != ''", "hash_password"),
    BranchPoint("VERIFY-MATCH", "Password matches stored hash",
                "bcrypt.checkpw is True", "verify_password"),
    BranchPoint("VERIFY-MISMATCH", "Password does not match stored hash",
                "bcrypt.checkpw is False or password empty", "verify_password"),
    BranchPoint("VERIFY-BAD-FMT", "Stored hash is not a bcrypt hash",
                "not stored_hash.startswith('$2') or checkpw raises", "verify_password"),
    # Tokens
    BranchPoint("TOKEN-CREATE-OK", "Token created with valid inputs",
                "sub and name and secret non-empty", "create_token"),
    BranchPoint("TOKEN-CREATE-NO-SUB", "Token creation rejected: empty subject",
                "user_id or name empty", "create_token"),
    BranchPoint("TOKEN-CREATE-NO-SECRET", "Token creation rejected: empty secret",
                "secret == ''", "create_token"),
    BranchPoint("TOKEN-VALID", "Token passes signature and expiry checks",
                "signature valid and not expired", "decode_token"),
    BranchPoint("TOKEN-EXPIRED", "Token rejected: expiry passed",
                "now >= exp", "decode_token"),
    BranchPoint("TOKEN-BAD-SIG", "Token rejected: signature mismatch",
                "HMAC does not verify", "decode_token"),
    BranchPoint("TOKEN-MALFORMED", "Token rejected: cannot decode",
                "not a JWT or claims missing", "decode_token"),
    # Auth gate
    BranchPoint("GATE-NO-HEADER", "No Authorization value present",
                "header is None or ''", "authenticate"),
    BranchPoint("GATE-NO-TOKEN-PART", "Header has no second part",
                "len(header.split()) < 2", "authenticate"),
    BranchPoint("GATE-BAD-SCHEME", "Scheme word is not Bearer (strict mode only)",
                "strict and scheme.lower() != 'bearer'", "authenticate"),
    BranchPoint("GATE-INVALID", "Token fails verification",
                "decode_token raises", "authenticate"),
    BranchPoint("GATE-OK", "Identity resolved from token",
                "decode_token succeeds", "authenticate"),
    # Registration
    BranchPoint("REG-MISSING", "Registration rejected: name or password absent",
                "not name or not password", "register"),
    BranchPoint("REG-POLICY", "Registration rejected: policy violation",
                "validate_password rejects", "register"),
    BranchPoint("REG-DUP", "Registration rejected: name already taken",
                "existing user with name", "register"),
    BranchPoint("REG-DUP-RACE", "Registration rejected by unique constraint",
                "insert raises IntegrityError", "register"),
    BranchPoint("REG-SUCCESS", "New user stored",
                "name free and policy passed", "register"),
    # Login
    BranchPoint("LOGIN-MISSING", "Login rejected: name or password absent",
                "not name or not password", "login"),
    BranchPoint("LOGIN-NO-USER", "Login rejected: unknown name",
                "no user with name", "login"),
    BranchPoint("LOGIN-BAD-PASS", "Login rejected: wrong password",
                "verify_password is False", "login"),
    BranchPoint("LOGIN-SUCCESS", "Token issued",
                "user exists and password matches", "login"),
    # Tasks
    BranchPoint("TASK-CREATE-MISSING", "Create rejected: required field absent",
                "title/priority/status/due_date missing", "create_task"),
    BranchPoint("TASK-CREATE-OK", "Task stored for owner",
                "all required fields present", "create_task"),
    BranchPoint("TASK-UPDATE-OK", "Owned task replaced",
                "rowcount > 0", "update_task"),
    BranchPoint("TASK-UPDATE-MISS", "Update matched nothing (absent or not owned)",
                "rowcount == 0", "update_task"),
    BranchPoint("TASK-DELETE-OK", "Owned task removed",
                "rowcount > 0", "delete_task"),
    BranchPoint("TASK-DELETE-MISS", "Delete matched nothing (absent or not owned)",
                "rowcount == 0", "delete_task"),
]


# ---------------------------------------------------------------------------
# Contract builder
# ---------------------------------------------------------------------------

def build_contract(
    min_password_length: int = MIN_PASSWORD_LENGTH,
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    token_ttl: int = DEFAULT_TOKEN_TTL,
) -> ServiceContract:
    """Construct the full service contract."""

    # -- validate_password ---------------------------------------------------
    validate_password_contract = OperationContract(
        name="validate_password",
        preconditions=[
            Precondition(
                "candidate_is_str",
                "Candidate must be a string",
                lambda pw: isinstance(pw, str),
            ),
        ],
        postconditions=[
            Postcondition(
                "short_always_too_short",
                f"Any candidate under {min_password_length} chars is TOO_SHORT",
                lambda pw, result: (
                    len(pw) >= min_password_length
                    or result.violation is not None
                    and result.violation.value == "TOO_SHORT"
                ),
            ),
            Postcondition(
                "first_failing_rule_reported",
                "The reported violation is the first failing rule in order",
                lambda pw, result: result.violation == next(
                    (r.violation for r in PASSWORD_RULES if not r.check(pw)),
                    None,
                ),
            ),
        ],
        error_conditions=[],
        properties=[
            AlgebraicProperty(
                "deterministic",
                "Same candidate always yields the same result",
                1,
                lambda policy_mod, pw: (
                    policy_mod.validate_password(pw)
                    == policy_mod.validate_password(pw)
                ),
            ),
        ],
    )

    # -- hash_password -------------------------------------------------------
    hash_password_contract = OperationContract(
        name="hash_password",
        preconditions=[
            Precondition(
                "password_not_empty",
                "Password must not be empty",
                lambda pw: bool(pw),
            ),
        ],
        postconditions=[
            Postcondition(
                "hash_is_bcrypt",
                "Hash is a bcrypt modular-crypt string",
                lambda pw, result: _user_hash_is_bcrypt(
                    {"password_hash": result}
                ),
            ),
            Postcondition(
                "hash_is_not_plaintext",
                "Hash never equals the plaintext",
                lambda pw, result: result != pw,
            ),
        ],
        error_conditions=[
            ErrorCondition(
                "empty_password",
                "Empty password raises ValueError",
                lambda pw: pw == "",
                ValueError,
            ),
        ],
        properties=[],
    )

    # -- verify_password -----------------------------------------------------
    verify_password_contract = OperationContract(
        name="verify_password",
        preconditions=[],
        postconditions=[
            Postcondition(
                "correct_password_matches",
                "verify(password, hash(password)) is True",
                lambda pw, hashed, result: result is True if pw else True,
            ),
        ],
        error_conditions=[
            ErrorCondition(
                "malformed_hash",
                "Non-bcrypt stored hash raises ValueError",
                lambda pw, hashed: not hashed.startswith("$2"),
                ValueError,
            ),
        ],
        properties=[
            AlgebraicProperty(
                "roundtrip",
                "verify(pw, hash(pw)) == True",
                1,
                lambda auth_mod, pw: auth_mod.verify_password(
                    pw, auth_mod.hash_password(pw, rounds=4)
                ),
            ),
            AlgebraicProperty(
                "single_char_mutation_fails",
                "verify(pw with any one char changed, hash(pw)) == False",
                1,
                lambda auth_mod, pw: _no_mutation_verifies(auth_mod, pw),
            ),
        ],
    )

    # -- create_token --------------------------------------------------------
    create_token_contract = OperationContract(
        name="create_token",
        preconditions=[
            Precondition(
                "subject_not_empty",
                "User id and name must not be empty",
                lambda uid, name, secret: bool(str(uid)) and bool(name),
            ),
            Precondition(
                "secret_not_empty",
                "Secret must not be empty",
                lambda uid, name, secret: bool(secret),
            ),
        ],
        postconditions=[
            Postcondition(
                "token_three_parts",
                "Token is a compact JWS with three dot-separated parts",
                lambda uid, name, secret, result: len(result.split(".")) == 3,
            ),
        ],
        error_conditions=[
            ErrorCondition(
                "empty_name",
                "Empty name raises ValueError",
                lambda uid, name, secret: name == "",
                ValueError,
            ),
            ErrorCondition(
                "empty_secret",
                "Empty secret raises ValueError",
                lambda uid, name, secret: bool(name) and secret == "",
                ValueError,
            ),
        ],
        properties=[
            AlgebraicProperty(
                "roundtrip",
                "decode(create(uid, name, secret), secret) recovers name",
                1,
                lambda auth_mod, name: (
                    auth_mod.decode_token(
                        auth_mod.create_token(
                            1, name, "contract-secret-0123456789abcdef", token_ttl
                        ),
                        "contract-secret-0123456789abcdef",
                    ).name == name
                ),
            ),
        ],
    )

    # -- decode_token --------------------------------------------------------
    decode_token_contract = OperationContract(
        name="decode_token",
        preconditions=[],
        postconditions=[
            Postcondition(
                "lifetime_matches_ttl",
                "exp - iat equals the configured lifetime",
                lambda token, secret, result: result.exp - result.iat == token_ttl,
            ),
        ],
        error_conditions=[
            ErrorCondition(
                "malformed_token",
                "A token without JWS structure raises ValueError",
                lambda token, secret: token.count(".") != 2,
                ValueError,
            ),
        ],
        properties=[],
    )

    return ServiceContract(
        min_password_length=min_password_length,
        bcrypt_rounds=bcrypt_rounds,
        token_ttl=token_ttl,
        password_rules=PASSWORD_RULES,
        operations={
            "validate_password": validate_password_contract,
            "hash_password": hash_password_contract,
            "verify_password": verify_password_contract,
            "create_token": create_token_contract,
            "decode_token": decode_token_contract,
        },
        branches=BRANCHES,
        user_rules=USER_RULES,
        task_rules=TASK_RULES,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _mutate_char(s: str, index: int) -> str:
    """Return ``s`` with the character at ``index`` replaced by a different one."""
    if not s:
        return "x"
    replacement = "a" if s[index] != "a" else "b"
    return s[:index] + replacement + s[index + 1:]


def _no_mutation_verifies(auth_mod: Any, pw: str) -> bool:
    """No single-character change of ``pw`` verifies against its hash."""
    hashed = auth_mod.hash_password(pw, rounds=4)
    return not any(
        auth_mod.verify_password(_mutate_char(pw, i), hashed)
        for i in range(len(pw))
    )

# Phase constants (read by the view, written only by the orchestrator)

# No identity. Terminal until an external sign-in completes and the session reloads.
SIGN_IN = "signin"

# Signed in but the storage deposit is missing. Entered from initial evaluation only.
REGISTRY = "registry"

# Idle. Every bike action starts here.
HOME = "home"

# One action in flight. Entered only from HOME, always returns to HOME.
TRANSACTION = "transaction"

PHASES = (SIGN_IN, REGISTRY, HOME, TRANSACTION)

# Transitions allowed mid-session. SIGN_IN has none: leaving it takes a reload.
TRANSITIONS = {
    SIGN_IN: frozenset(),
    REGISTRY: frozenset({HOME}),
    HOME: frozenset({TRANSACTION}),
    TRANSACTION: frozenset({HOME}),
}

# Phases a (re)load may start from
INITIAL_PHASES = frozenset({SIGN_IN, REGISTRY, HOME})


class IllegalTransition(Exception):
    def __init__(self, current: str, target: str):
        super().__init__(f"illegal phase transition {current} -> {target}")
        self.current = current
        self.target = target


def evaluate_initial_phase(signed_in: bool, registered: bool) -> str:
    if not signed_in:
        return SIGN_IN
    if not registered:
        return REGISTRY
    return HOME


class PhaseMachine:
    def __init__(self, initial: str = HOME):
        if initial not in INITIAL_PHASES:
            raise IllegalTransition("<none>", initial)
        self._current = initial
        self.history = [initial]

    @property
    def current(self) -> str:
        return self._current

    def can_transition(self, target: str) -> bool:
        return target in TRANSITIONS.get(self._current, frozenset())

    def transition(self, target: str) -> str:
        if not self.can_transition(target):
            raise IllegalTransition(self._current, target)
        self._current = target
        self.history.append(target)
        return target

    def reset(self, target: str) -> str:
        """Re-evaluate from scratch after a session (re)load. Never while a transaction is in flight."""
        if self._current == TRANSACTION or target not in INITIAL_PHASES:
            raise IllegalTransition(self._current, target)
        self._current = target
        self.history.append(target)
        return target

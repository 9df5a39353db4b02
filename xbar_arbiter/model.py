"""Behavioral model of the crossbar arbiter.

The model mirrors the gateware in :mod:`xbar_arbiter.arbiter` tick for tick, and is used as its
golden reference. Combinational and clocked behavior are kept apart: :func:`classify_requests`,
:func:`select_winner` and :func:`compute_decision` are pure functions of the current state and
inputs, while :func:`commit` derives the state visible after the next clock edge. All state is
immutable; :class:`CrossbarArbiterModel` only swaps one :class:`ArbiterState` for the next.
"""

import enum
import operator
import warnings

from ._utils import check_ports, to_bits


__all__ = [
    "RequestRangeError", "RequestRangeWarning",
    "Phase", "Decision", "Observation", "ArbiterState",
    "classify_requests", "select_winner", "compute_decision", "commit",
    "CrossbarArbiterModel",
]


_POLICIES = ("reject", "idle")


class RequestRangeError(ValueError):
    """Exception raised when a request value does not name an idle input or an output resource,
    and the ``"reject"`` policy is in effect."""


class RequestRangeWarning(Warning):
    pass


class Phase(enum.Enum):
    RESET = "reset"
    RUN   = "run"


class Decision:
    """Grant record of one output resource.

    Used both for the selector's pending decision and for the registered copy of it that
    the acknowledge input is matched against.

    Attributes
    ----------
    winner : int
        Index of the granted input. Meaningless unless ``valid`` is set.
    valid : bool
        Whether the resource is granted at all.
    """
    __slots__ = ("_winner", "_valid")

    def __init__(self, winner=0, valid=False):
        self._winner = operator.index(winner)
        self._valid  = bool(valid)

    @property
    def winner(self):
        return self._winner

    @property
    def valid(self):
        return self._valid

    def __eq__(self, other):
        if not isinstance(other, Decision):
            return NotImplemented
        return (self.winner, self.valid) == (other.winner, other.valid)

    def __hash__(self):
        return hash((Decision, self.winner, self.valid))

    def __repr__(self):
        if not self.valid:
            return "Decision(idle)"
        return f"Decision(winner={self.winner})"


Decision.IDLE = Decision()


class Observation:
    """Externally visible outputs after one tick.

    Attributes
    ----------
    grant : tuple of int
        Per input, the one-based index of the granted resource, or 0 if none.
    grant_valid : tuple of bool
        Per input, the grant-valid output. Derived from ``grant`` unless given explicitly, which
        is how observations sampled from gateware keep the two outputs apart.
    """
    __slots__ = ("_grant", "_grant_valid")

    def __init__(self, grant, grant_valid=None):
        self._grant = tuple(operator.index(value) for value in grant)
        if grant_valid is None:
            self._grant_valid = tuple(value != 0 for value in self._grant)
        else:
            self._grant_valid = tuple(bool(value) for value in grant_valid)
            if len(self._grant_valid) != len(self._grant):
                raise ValueError("Grant-valid vector must have {} entries, not {}"
                                 .format(len(self._grant), len(self._grant_valid)))

    @property
    def grant(self):
        return self._grant

    @property
    def grant_valid(self):
        return self._grant_valid

    def __eq__(self, other):
        if not isinstance(other, Observation):
            return NotImplemented
        return (self.grant, self.grant_valid) == (other.grant, other.grant_valid)

    def __hash__(self):
        return hash((Observation, self.grant, self.grant_valid))

    def __repr__(self):
        if self.grant_valid == tuple(value != 0 for value in self.grant):
            return f"Observation(grant={list(self.grant)!r})"
        return (f"Observation(grant={list(self.grant)!r}, "
                f"grant_valid={[int(value) for value in self.grant_valid]!r})")


class ArbiterState:
    """Complete state of the arbiter between two ticks.

    Parameters
    ----------
    ports : int
        Number of inputs, which is also the number of output resources.
    priority : iterable of int
        Round-robin start index of each resource.
    registered : iterable of :class:`Decision`
        Grant records committed on the previous tick, i.e. the ones currently visible.
    grant : iterable of int
        Visible grant of each input.
    phase : :class:`Phase`
        :attr:`Phase.RESET` if reset was asserted on the last tick.
    """
    __slots__ = ("_ports", "_priority", "_registered", "_grant", "_phase")

    def __init__(self, ports, *, priority, registered, grant, phase=Phase.RUN):
        self._ports      = check_ports(ports)
        self._priority   = tuple(operator.index(value) for value in priority)
        self._registered = tuple(registered)
        self._grant      = tuple(operator.index(value) for value in grant)
        self._phase      = Phase(phase)

        for name, value in (("priority", self._priority), ("registered", self._registered),
                            ("grant", self._grant)):
            if len(value) != ports:
                raise ValueError("State field {!r} must have {} entries, not {}"
                                 .format(name, ports, len(value)))
        for value in self._priority:
            if value not in range(ports):
                raise ValueError("Priority pointer must be within range({}), not {!r}"
                                 .format(ports, value))
        for value in self._registered:
            if not isinstance(value, Decision):
                raise TypeError("Registered grant record must be a Decision, not {!r}"
                                .format(value))
        for value in self._grant:
            if value not in range(ports + 1):
                raise ValueError("Grant must be within range({}), not {!r}"
                                 .format(ports + 1, value))

    @classmethod
    def reset(cls, ports):
        return cls(ports,
                   priority=(0,) * ports,
                   registered=(Decision.IDLE,) * ports,
                   grant=(0,) * ports,
                   phase=Phase.RESET)

    @property
    def ports(self):
        return self._ports

    @property
    def priority(self):
        return self._priority

    @property
    def registered(self):
        return self._registered

    @property
    def grant(self):
        return self._grant

    @property
    def grant_valid(self):
        return tuple(value != 0 for value in self._grant)

    @property
    def phase(self):
        return self._phase

    def observe(self):
        return Observation(self._grant)

    def __eq__(self, other):
        if not isinstance(other, ArbiterState):
            return NotImplemented
        return (self.ports == other.ports and
                self.priority == other.priority and
                self.registered == other.registered and
                self.grant == other.grant and
                self.phase == other.phase)

    def __hash__(self):
        return hash((ArbiterState, self.ports, self.priority, self.registered, self.grant,
                     self.phase))

    def __repr__(self):
        return ("ArbiterState(ports={}, priority={!r}, registered={!r}, grant={!r}, phase={})"
                .format(self.ports, list(self.priority), list(self.registered),
                        list(self.grant), self.phase.value))


def _check_policy(invalid_request):
    if invalid_request not in _POLICIES:
        raise ValueError("Invalid request policy must be one of {}, not {!r}"
                         .format(", ".join(repr(policy) for policy in _POLICIES),
                                 invalid_request))
    return invalid_request


def _normalize_requests(requests, ports, invalid_request, stacklevel):
    requests = list(requests)
    if len(requests) != ports:
        raise ValueError("Request vector must have {} entries, not {}"
                         .format(ports, len(requests)))
    normalized = []
    for index, value in enumerate(requests):
        if (isinstance(value, int) and not isinstance(value, bool) and
                value in range(ports + 1)):
            normalized.append(value)
        elif invalid_request == "reject":
            raise RequestRangeError("Request of input {} must be an integer within range({}), "
                                    "not {!r}"
                                    .format(index, ports + 1, value))
        else:
            warnings.warn("Request of input {} is out of range ({!r}); treating as idle"
                          .format(index, value),
                          RequestRangeWarning, stacklevel=stacklevel)
            normalized.append(0)
    return tuple(normalized)


def _normalize_ack(ack, ports):
    if ack is None:
        return (False,) * ports
    if isinstance(ack, int) and not isinstance(ack, bool):
        if ack not in range(1 << ports):
            raise ValueError("Acknowledge mask must fit in {} bits, not {!r}"
                             .format(ports, ack))
        return to_bits(ack, ports)
    ack = tuple(bool(value) for value in ack)
    if len(ack) != ports:
        raise ValueError("Acknowledge vector must have {} entries, not {}"
                         .format(ports, len(ack)))
    return ack


def classify_requests(requests, *, ports=8, invalid_request="reject"):
    """Derive the set of eligible requesters of each resource.

    Input ``i`` is eligible for resource ``r`` if ``requests[i] == r + 1`` and ``i != r``.

    Returns
    -------
    tuple of int
        One bitmask per resource; bit ``i`` is set if input ``i`` is eligible.

    Raises
    ------
    :exc:`RequestRangeError`
        If a request value is outside of ``range(ports + 1)`` and ``invalid_request`` is
        ``"reject"``.
    """
    check_ports(ports)
    _check_policy(invalid_request)
    return _classify_requests(requests, ports, invalid_request, stacklevel=3)


def _classify_requests(requests, ports, invalid_request, *, stacklevel):
    # `stacklevel` is what a warning issued from this function would need to point at the
    # caller of the public entry point.
    requests = _normalize_requests(requests, ports, invalid_request, stacklevel + 1)

    eligible = [0] * ports
    for index, value in enumerate(requests):
        if value == 0:
            continue
        resource = value - 1
        if resource == index:
            continue
        eligible[resource] |= 1 << index
    return tuple(eligible)


def select_winner(eligible, priority, *, ports=8):
    """Pick the first eligible input, scanning upwards from ``priority`` and wrapping around."""
    check_ports(ports)
    if priority not in range(ports):
        raise ValueError("Priority pointer must be within range({}), not {!r}"
                         .format(ports, priority))
    for offset in range(ports):
        index = (priority + offset) % ports
        if eligible & (1 << index):
            return Decision(index, valid=True)
    return Decision.IDLE


def compute_decision(state, requests, *, invalid_request="reject"):
    """Compute the pending grant record of every resource from the pre-tick ``state``."""
    _check_policy(invalid_request)
    return _compute_decision(state, requests, invalid_request, stacklevel=3)


def _compute_decision(state, requests, invalid_request, *, stacklevel):
    eligible = _classify_requests(requests, state.ports, invalid_request,
                                  stacklevel=stacklevel + 1)
    return tuple(select_winner(eligible[resource], state.priority[resource], ports=state.ports)
                 for resource in range(state.ports))


def commit(state, pending, ack=None, *, reset=False):
    """Advance ``state`` across a clock edge.

    Reset overrides everything else. Otherwise, ``pending`` becomes the registered grant
    record, the priority pointer of every resource whose *previously* registered grant is
    acknowledged moves past that grant's winner, and the visible grants are rebuilt from
    ``pending``. Every update reads the pre-tick ``state`` only.

    ``ack`` is either an iterable of booleans or an integer bitmask, bit ``r`` for resource ``r``.
    Acknowledging a resource without a valid registered grant has no effect.
    """
    ports = state.ports
    if reset:
        return ArbiterState.reset(ports)

    pending = tuple(pending)
    if len(pending) != ports:
        raise ValueError("Pending grant record must have {} entries, not {}"
                         .format(ports, len(pending)))
    ack = _normalize_ack(ack, ports)

    priority = []
    for resource, previous in enumerate(state.registered):
        if previous.valid and ack[resource]:
            priority.append((previous.winner + 1) % ports)
        else:
            priority.append(state.priority[resource])

    grant = [0] * ports
    for resource, decision in enumerate(pending):
        if decision.valid:
            grant[decision.winner] = resource + 1

    return ArbiterState(ports, priority=priority, registered=pending, grant=grant,
                        phase=Phase.RUN)


class CrossbarArbiterModel:
    """Stateful wrapper around the behavioral model.

    Parameters
    ----------
    ports : int
        Number of inputs, which is also the number of output resources.
    invalid_request : str
        What to do with a request value outside of ``range(ports + 1)``. ``"reject"`` raises
        :exc:`RequestRangeError` and leaves the state untouched; ``"idle"`` emits
        :exc:`RequestRangeWarning` and treats the input as idle, which is what the gateware does.
    """
    def __init__(self, ports=8, *, invalid_request="reject"):
        self._ports = check_ports(ports)
        self._invalid_request = _check_policy(invalid_request)
        self._state = ArbiterState.reset(self._ports)

    @property
    def ports(self):
        return self._ports

    @property
    def invalid_request(self):
        return self._invalid_request

    @property
    def state(self):
        return self._state

    @property
    def priority(self):
        return self._state.priority

    @property
    def phase(self):
        return self._state.phase

    @property
    def grant(self):
        return self._state.grant

    @property
    def grant_valid(self):
        return self._state.grant_valid

    def tick(self, *, reset=False, request=None, ack=None):
        """Advance by one tick and return what is visible afterwards.

        While ``reset`` is asserted, ``request`` and ``ack`` are ignored.
        """
        if reset:
            self._state = ArbiterState.reset(self._ports)
        else:
            if request is None:
                request = (0,) * self._ports
            pending = _compute_decision(self._state, request, self._invalid_request,
                                        stacklevel=3)
            self._state = commit(self._state, pending, ack)
        return self._state.observe()

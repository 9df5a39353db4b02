"""Stimulus for driving a crossbar arbiter one tick at a time.

A stimulus is a sequence of :class:`Tick` records, each holding the reset, request and
acknowledge inputs for one clock cycle. Stimuli can be loaded from `JSON Lines`_ files with
:func:`load_stimulus`, one object per tick::

    {"reset": true}
    {"request": [4, 0, 0, 0, 0, 0, 0, 0]}
    {"request": [4, 0, 0, 0, 0, 0, 0, 0], "ack": [false, false, false, true, false, false, false, false]}

Omitted keys default to an idle input: reset deasserted, no requests, no acknowledgements.
``ack`` may also be given as an integer bitmask, bit ``r`` standing for resource ``r``.

.. _JSON Lines: https://jsonlines.org/
"""

import json
import pprint
import warnings

import jschon

from ._utils import check_ports, to_bits, from_bits


__all__ = ["StimulusError", "Tick", "STIMULUS_SCHEMA", "load_stimulus", "SCENARIOS", "scenario"]


class StimulusError(Exception):
    """Exception raised by :func:`load_stimulus` when a record is malformed."""


STIMULUS_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://example.com/schema/xbar-arbiter/0.1/stimulus.json",
    "type": "object",
    "properties": {
        "reset": {
            "type": "boolean",
        },
        "request": {
            "type": "array",
            "items": {
                "type": "integer",
                "minimum": 0,
            },
        },
        "ack": {
            "oneOf": [
                {
                    "type": "array",
                    "items": {
                        "type": "boolean",
                    },
                },
                {
                    "type": "integer",
                    "minimum": 0,
                },
            ],
        },
    },
    "additionalProperties": False,
}


def _stimulus_schema():
    catalog = jschon.create_catalog("2020-12")
    return jschon.JSONSchema(STIMULUS_SCHEMA, catalog=catalog)


class Tick:
    """Inputs of a crossbar arbiter for one clock cycle.

    Parameters
    ----------
    reset : bool
        Whether reset is asserted.
    request : iterable of int
        Requested resource of each input, one-based; 0 means idle. Values must fit in
        the request port, which is wide enough for ``ports`` but may also encode values above it.
    ack : iterable of bool or int
        Acknowledge input of each resource, or the same as a bitmask.
    ports : int
        Number of inputs, which is also the number of output resources.
    """
    __slots__ = ("_ports", "_reset", "_request", "_ack")

    def __init__(self, reset=False, request=None, ack=None, *, ports=8):
        self._ports = check_ports(ports)
        self._reset = bool(reset)

        if request is None:
            request = (0,) * ports
        request = tuple(request)
        if len(request) != ports:
            raise ValueError("Request vector must have {} entries, not {}"
                             .format(ports, len(request)))
        limit = 1 << ports.bit_length()
        for index, value in enumerate(request):
            if not isinstance(value, int) or isinstance(value, bool) or value not in range(limit):
                raise ValueError("Request of input {} must be an integer within range({}), "
                                 "not {!r}"
                                 .format(index, limit, value))
        self._request = request

        if ack is None:
            ack = 0
        elif isinstance(ack, int) and not isinstance(ack, bool):
            if ack not in range(1 << ports):
                raise ValueError("Acknowledge mask must fit in {} bits, not {!r}"
                                 .format(ports, ack))
        else:
            ack = tuple(ack)
            if len(ack) != ports:
                raise ValueError("Acknowledge vector must have {} entries, not {}"
                                 .format(ports, len(ack)))
            ack = from_bits(ack)
        self._ack = ack

    @property
    def ports(self):
        return self._ports

    @property
    def reset(self):
        return self._reset

    @property
    def request(self):
        return self._request

    @property
    def ack(self):
        """Acknowledge input as a bitmask."""
        return self._ack

    @property
    def ack_bits(self):
        return to_bits(self._ack, self._ports)

    def as_json(self):
        return {
            "reset": self.reset,
            "request": list(self.request),
            "ack": list(self.ack_bits),
        }

    def __eq__(self, other):
        if not isinstance(other, Tick):
            return NotImplemented
        return ((self.ports, self.reset, self.request, self.ack) ==
                (other.ports, other.reset, other.request, other.ack))

    def __hash__(self):
        return hash((Tick, self.ports, self.reset, self.request, self.ack))

    def __repr__(self):
        parts = []
        if self.reset:
            parts.append("reset=True")
        if any(self.request):
            parts.append(f"request={list(self.request)!r}")
        if self.ack:
            parts.append(f"ack=0b{self.ack:0{self.ports}b}")
        return "Tick({})".format(", ".join(parts))


def load_stimulus(lines, *, ports=8):
    """Parse a JSON Lines stimulus.

    Blank lines are skipped.

    Arguments
    ---------
    lines : iterable of str
        Lines of the stimulus, e.g. an open text file.
    ports : int
        Number of inputs of the arbiter the stimulus is meant for.

    Returns
    -------
    list of :class:`Tick`

    Raises
    ------
    :exc:`StimulusError`
        If a line is not valid JSON, does not conform to :data:`STIMULUS_SCHEMA`, or does not
        fit an arbiter with ``ports`` inputs.
    """
    check_ports(ports)
    schema = None
    ticks = []
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            instance = json.loads(line)
        except json.JSONDecodeError as e:
            raise StimulusError(f"Line {lineno}: {e}") from e

        # jschon's rfc3986 dependency emits a DeprecationWarning on recent Python versions.
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", category=DeprecationWarning)
            if schema is None:
                schema = _stimulus_schema()
            result = schema.evaluate(jschon.JSON(instance))
        if not result.valid:
            raise StimulusError(f"Line {lineno}: invalid record:\n" +
                                pprint.pformat(result.output("basic")["errors"],
                                               sort_dicts=False))

        try:
            ticks.append(Tick(instance.get("reset", False), instance.get("request"),
                              instance.get("ack"), ports=ports))
        except ValueError as e:
            raise StimulusError(f"Line {lineno}: {e}") from e
    return ticks


def _idle(ports):
    return [Tick(reset=True, ports=ports), Tick(ports=ports), Tick(ports=ports)]


def _single(ports):
    request = [0] * ports
    request[0] = 4
    return [Tick(reset=True, ports=ports),
            Tick(request=request, ports=ports),
            Tick(ports=ports)]


def _pair(ports):
    request = [0] * ports
    request[1] = 3
    request[4] = 7
    return [Tick(reset=True, ports=ports),
            Tick(request=request, ports=ports),
            Tick(ports=ports)]


def _self(ports):
    request = [index + 1 for index in range(ports)]
    return [Tick(reset=True, ports=ports),
            Tick(request=request, ports=ports),
            Tick(ports=ports)]


def _contention(ports):
    # Inputs 0, 1 and 2 compete for resource 6 (one-based). Every grant is acknowledged on the
    # cycle after it first becomes visible; the cycle in between lets the pointer settle.
    request = [0] * ports
    request[0] = request[1] = request[2] = 6
    ack = 1 << 5
    return [Tick(reset=True, ports=ports),
            Tick(request=request, ports=ports),
            Tick(request=request, ack=ack, ports=ports),
            Tick(request=request, ports=ports),
            Tick(request=request, ack=ack, ports=ports),
            Tick(request=request, ports=ports),
            Tick(ack=ack, ports=ports)]


def _parallel(ports):
    request = [(index + 1) % ports + 1 for index in range(ports)]
    return [Tick(reset=True, ports=ports),
            Tick(request=request, ports=ports),
            Tick(ports=ports)]


_SCENARIOS = {
    "idle":       (_idle, 2),
    "single":     (_single, 4),
    "pair":       (_pair, 7),
    "self":       (_self, 2),
    "contention": (_contention, 6),
    "parallel":   (_parallel, 2),
}

#: Names of the built-in scenarios accepted by :func:`scenario`.
SCENARIOS = tuple(_SCENARIOS)


def scenario(name, *, ports=8):
    """Reference stimulus.

    Every scenario starts with a cycle of reset, followed by the scenario proper and an idle
    cycle.

    ``"idle"``
        No requests at all.
    ``"single"``
        Input 0 requests resource 4.
    ``"pair"``
        Input 1 requests resource 3, while input 4 requests resource 7.
    ``"self"``
        Every input requests the resource with its own index, which is never granted.
    ``"contention"``
        Inputs 0, 1 and 2 request resource 6, and each grant is acknowledged in turn.
    ``"parallel"``
        Every input requests a distinct resource other than its own.

    Resources are numbered from 1, as they are encoded in the request vector.
    """
    if name not in _SCENARIOS:
        raise ValueError("Scenario must be one of {}, not {!r}"
                         .format(", ".join(SCENARIOS), name))
    check_ports(ports)
    builder, min_ports = _SCENARIOS[name]
    if ports < min_ports:
        raise ValueError("Scenario {!r} needs at least {} ports, not {}"
                         .format(name, min_ports, ports))
    return builder(ports)

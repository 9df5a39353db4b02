from amaranth import *
from amaranth.lib import wiring, meta
from amaranth.lib.wiring import In, Out

from ._utils import check_ports
from .classifier import RequestClassifier
from .selector import RoundRobinSelector


__all__ = ["CrossbarAnnotation", "CrossbarArbiter"]


class CrossbarAnnotation(meta.Annotation):
    """Crossbar arbiter metadata.

    Describes the request encoding and timing of a :class:`CrossbarArbiter` interface, for
    tooling that drives it without knowing about Amaranth.

    Arguments
    ---------
    origin : :class:`CrossbarArbiter.Signature`
        Signature described by this annotation.
    """
    schema = {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "$id": "https://example.com/schema/xbar-arbiter/0.1/crossbar.json",
        "type": "object",
        "properties": {
            "ports": {
                "type": "integer",
                "minimum": 2,
            },
            "request_encoding": {
                "enum": ["one-based"],
            },
            "latency": {
                "type": "integer",
                "const": 1,
            },
        },
        "additionalProperties": False,
        "required": [
            "ports",
            "request_encoding",
            "latency",
        ],
    }

    def __init__(self, origin):
        if not isinstance(origin, CrossbarArbiter.Signature):
            raise TypeError("Origin must be a CrossbarArbiter.Signature, not {!r}"
                            .format(origin))
        self._origin = origin

    @property
    def origin(self):
        return self._origin

    def as_json(self):
        instance = {
            "ports": self.origin.ports,
            "request_encoding": "one-based",
            "latency": 1,
        }
        self.validate(instance)
        return instance


class CrossbarArbiter(wiring.Component):
    """Crossbar arbiter.

    Allocates ``ports`` output resources to ``ports`` inputs. Every resource is arbitrated
    independently by a :class:`RoundRobinSelector`, so up to ``ports`` disjoint grants can be
    made on the same cycle. An input is never granted the resource with its own index.

    The decision is registered: a grant becomes visible on the cycle after the request was
    sampled. Each resource has a priority pointer that only moves once the consumer
    acknowledges the visible grant, on which it moves to the input after the acknowledged
    winner. ``ack`` is therefore matched against the grant that is visible on the same cycle,
    which lags the selector by one cycle.

    Parameters
    ----------
    ports : int
        Number of inputs, which is also the number of output resources.
    trace : bool
        If asserted, print a line whenever a grant is committed or a priority pointer moves.
        Only useful in simulation.

    Attributes
    ----------
    reset : Signal(), in
        Synchronous reset. Clears all grants and priority pointers, overriding every other input.
    request : Signal(range(ports + 1)).array(ports), in
        Requested resource of each input, one-based; 0 means idle. Values above ``ports``
        are treated as idle.
    ack : Signal(ports), in
        Per resource, acknowledges the grant currently visible for it.
    grant : Signal(range(ports + 1)).array(ports), out
        Granted resource of each input, one-based; 0 means none.
    grant_valid : Signal(ports), out
        Per input, asserted if ``grant`` is nonzero.
    """

    class Signature(wiring.Signature):
        """Signature of a crossbar arbiter.

        Parameters
        ----------
        ports : int
            Number of inputs, which is also the number of output resources.
        """
        def __init__(self, ports=8):
            self._ports = check_ports(ports)
            super().__init__({
                "reset":       In(1),
                "request":     In(range(ports + 1)).array(ports),
                "ack":         In(ports),
                "grant":       Out(range(ports + 1)).array(ports),
                "grant_valid": Out(ports),
            })

        @property
        def ports(self):
            return self._ports

        def annotations(self, obj, /):
            return (*super().annotations(obj), CrossbarAnnotation(self))

        def __eq__(self, other):
            return type(other) is type(self) and other.ports == self.ports

        def __repr__(self):
            return f"CrossbarArbiter.Signature({self.ports})"

    def __init__(self, ports=8, *, trace=False):
        self._ports = check_ports(ports)
        self._trace = bool(trace)
        super().__init__(self.Signature(ports))

    @property
    def ports(self):
        return self._ports

    @property
    def trace(self):
        return self._trace

    def elaborate(self, platform):
        m = Module()

        ports = self.ports

        m.submodules.classifier = classifier = RequestClassifier(ports)
        for index in range(ports):
            m.d.comb += classifier.request[index].eq(self.request[index])

        priority          = [Signal(range(ports), name=f"priority{resource}")
                             for resource in range(ports)]
        registered_winner = [Signal(range(ports), name=f"registered_winner{resource}")
                             for resource in range(ports)]
        registered_valid  = Signal(ports)

        selectors = []
        for resource in range(ports):
            selector = RoundRobinSelector(ports)
            m.submodules[f"selector{resource}"] = selector
            m.d.comb += [
                selector.eligible.eq(classifier.eligible[resource]),
                selector.priority.eq(priority[resource]),
            ]
            selectors.append(selector)

        # An input requests a single resource, so at most one selector can pick it.
        grant_next = [Signal(range(ports + 1), name=f"grant_next{index}")
                      for index in range(ports)]
        for resource, selector in enumerate(selectors):
            with m.If(selector.valid):
                with m.Switch(selector.winner):
                    for index in range(ports):
                        if index == resource:
                            continue
                        with m.Case(index):
                            m.d.comb += grant_next[index].eq(resource + 1)

        with m.If(self.reset):
            for resource in range(ports):
                m.d.sync += [
                    priority[resource].eq(0),
                    registered_winner[resource].eq(0),
                ]
            for index in range(ports):
                m.d.sync += self.grant[index].eq(0)
            m.d.sync += [
                registered_valid.eq(0),
                self.grant_valid.eq(0),
            ]

        with m.Else():
            for resource, selector in enumerate(selectors):
                m.d.sync += [
                    registered_winner[resource].eq(selector.winner),
                    registered_valid[resource].eq(selector.valid),
                ]

                advanced = Mux(registered_winner[resource] == ports - 1,
                               0, registered_winner[resource] + 1)
                with m.If(registered_valid[resource] & self.ack[resource]):
                    m.d.sync += priority[resource].eq(advanced)
                    if self.trace:
                        m.d.sync += Print(Format(f"xbar: resource {resource} priority -> {{}}",
                                                 advanced))

                if self.trace:
                    with m.If(selector.valid):
                        m.d.sync += Print(Format(f"xbar: resource {resource} -> input {{}}",
                                                 selector.winner))

            for index in range(ports):
                m.d.sync += [
                    self.grant[index].eq(grant_next[index]),
                    self.grant_valid[index].eq(grant_next[index] != 0),
                ]

        return m

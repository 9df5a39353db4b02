from amaranth import *
from amaranth.lib import wiring
from amaranth.lib.wiring import In, Out

from ._utils import check_ports


__all__ = ["RoundRobinSelector"]


class RoundRobinSelector(wiring.Component):
    """Round-robin selector.

    Grants one of a set of eligible inputs. The inputs are scanned starting at ``priority``
    and wrapping around, and the first eligible one wins. Unlike
    :class:`amaranth.lib.scheduler.RoundRobin`, the selector keeps no state: the priority
    pointer is owned by the caller, which only advances it once a grant has been acknowledged.
    Purely combinational.

    Parameters
    ----------
    ports : int
        Number of inputs.

    Attributes
    ----------
    eligible : Signal(ports), in
        Set of eligible inputs.
    priority : Signal(range(ports)), in
        Index of the input scanned first.
    winner : Signal(range(ports)), out
        Index of the granted input. Zero if ``valid`` is deasserted.
    valid : Signal(), out
        Asserted if any input is eligible.
    """
    def __init__(self, ports=8):
        self._ports = check_ports(ports)
        super().__init__({
            "eligible": In(ports),
            "priority": In(range(ports)),
            "winner":   Out(range(ports)),
            "valid":    Out(1),
        })

    @property
    def ports(self):
        return self._ports

    def elaborate(self, platform):
        m = Module()

        with m.Switch(self.priority):
            for start in range(self.ports):
                with m.Case(start):
                    # Later assignments take precedence, so the scan order is reversed.
                    for offset in reversed(range(self.ports)):
                        index = (start + offset) % self.ports
                        with m.If(self.eligible[index]):
                            m.d.comb += self.winner.eq(index)

        m.d.comb += self.valid.eq(self.eligible.any())

        return m

from amaranth import *
from amaranth.lib import wiring
from amaranth.lib.wiring import In, Out

from ._utils import check_ports


__all__ = ["RequestClassifier"]


class RequestClassifier(wiring.Component):
    """Request classifier.

    For every output resource, derives the set of inputs currently requesting it. An input
    never counts as a requester of the resource with its own index. Purely combinational.

    Parameters
    ----------
    ports : int
        Number of inputs, which is also the number of output resources.

    Attributes
    ----------
    request : Signal(range(ports + 1)).array(ports), in
        Requested resource of each input, one-based; 0 means idle. Values above ``ports``
        do not name any resource and are idle as well.
    eligible : Signal(ports).array(ports), out
        Per resource, the set of eligible inputs; bit ``i`` stands for input ``i``.
    """
    def __init__(self, ports=8):
        self._ports = check_ports(ports)
        super().__init__({
            "request":  In(range(ports + 1)).array(ports),
            "eligible": Out(ports).array(ports),
        })

    @property
    def ports(self):
        return self._ports

    def elaborate(self, platform):
        m = Module()

        for resource in range(self.ports):
            m.d.comb += self.eligible[resource].eq(Cat(
                Const(0) if index == resource else (self.request[index] == resource + 1)
                for index in range(self.ports)
            ))

        return m

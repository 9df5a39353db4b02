from amaranth import *
from amaranth.lib import wiring
from amaranth.lib.wiring import In, Out

from xbar_arbiter import CrossbarArbiter
from xbar_arbiter.cli import main


class Switch(wiring.Component):
    """Four-port switch front end.

    Each input asks for an output with a one-hot ``want`` vector; the arbiter sees the
    one-based index of the lowest bit. Grants are acknowledged as soon as they become visible,
    so contended outputs rotate between their requesters every other cycle.
    """
    want:  In(4).array(4)
    grant: Out(3).array(4)

    def __init__(self):
        super().__init__()
        self.arbiter = CrossbarArbiter(4)

    def elaborate(self, platform):
        m = Module()
        m.submodules.arbiter = arbiter = self.arbiter

        for index in range(4):
            with m.Switch(self.want[index]):
                for resource in range(4):
                    with m.Case(f"{'-' * (3 - resource)}1{'0' * resource}"):
                        m.d.comb += arbiter.request[index].eq(resource + 1)

        ack = Signal(4)
        for index in range(4):
            with m.If(arbiter.grant_valid[index]):
                with m.Switch(arbiter.grant[index]):
                    for resource in range(4):
                        with m.Case(resource + 1):
                            m.d.comb += ack[resource].eq(1)
            m.d.comb += self.grant[index].eq(arbiter.grant[index])
        m.d.comb += arbiter.ack.eq(ack)

        return m


if __name__ == "__main__":
    main(design=Switch())

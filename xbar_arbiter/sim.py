from amaranth.sim import Simulator

from ._utils import check_ports, to_bits
from .arbiter import CrossbarArbiter
from .model import CrossbarArbiterModel, Observation


__all__ = ["simulate", "run_model"]


def _check_ticks(ticks, ports):
    ticks = list(ticks)
    for tick in ticks:
        if tick.ports != ports:
            raise ValueError("Stimulus is meant for {} ports, not {}"
                             .format(tick.ports, ports))
    return ticks


def simulate(ticks, *, ports=8, trace=False, vcd_file=None, gtkw_file=None, period=1e-6):
    """Run a stimulus through the gateware.

    Each :class:`~xbar_arbiter.stimulus.Tick` is applied for one cycle of the ``sync`` clock
    domain, and the outputs are sampled right after the following clock edge.

    Arguments
    ---------
    ticks : iterable of :class:`~xbar_arbiter.stimulus.Tick`
        Stimulus to apply.
    ports : int
        Number of inputs of the arbiter.
    trace : bool
        Passed on to :class:`~xbar_arbiter.arbiter.CrossbarArbiter`.
    vcd_file, gtkw_file : file or str
        Where to write waveforms, as accepted by :meth:`amaranth.sim.Simulator.write_vcd`.
        No waveforms are written unless ``vcd_file`` is given.
    period : float
        Clock period, in seconds.

    Returns
    -------
    list of :class:`~xbar_arbiter.model.Observation`
        One observation per tick.
    """
    check_ports(ports)
    ticks = _check_ticks(ticks, ports)

    dut = CrossbarArbiter(ports, trace=trace)
    observations = []

    async def testbench(ctx):
        for tick in ticks:
            ctx.set(dut.reset, tick.reset)
            for index, value in enumerate(tick.request):
                ctx.set(dut.request[index], value)
            ctx.set(dut.ack, tick.ack)
            await ctx.tick()
            observations.append(Observation(
                [ctx.get(dut.grant[index]) for index in range(ports)],
                to_bits(ctx.get(dut.grant_valid), ports)))

    sim = Simulator(dut)
    sim.add_clock(period)
    sim.add_testbench(testbench)
    if vcd_file is not None:
        with sim.write_vcd(vcd_file=vcd_file, gtkw_file=gtkw_file, traces=dut):
            sim.run()
    else:
        sim.run()
    return observations


def run_model(ticks, *, ports=8, invalid_request="idle"):
    """Run a stimulus through the behavioral model.

    The ``"idle"`` policy for out-of-range requests matches the gateware, so the result
    can be compared to that of :func:`simulate` directly.
    """
    check_ports(ports)
    ticks = _check_ticks(ticks, ports)

    model = CrossbarArbiterModel(ports, invalid_request=invalid_request)
    return [model.tick(reset=tick.reset, request=tick.request, ack=tick.ack)
            for tick in ticks]

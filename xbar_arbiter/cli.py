import argparse

from amaranth.back import rtlil, verilog

from ._utils import from_bits, to_binary
from .arbiter import CrossbarArbiter
from .sim import simulate, run_model
from .stimulus import SCENARIOS, StimulusError, load_stimulus, scenario


__all__ = ["main"]


def main_parser(parser=None):
    if parser is None:
        parser = argparse.ArgumentParser("xbar-arbiter", description="""
        Round-robin crossbar arbiter: generate gateware or simulate it.
        """)

    p_design = argparse.ArgumentParser(add_help=False)
    p_design.add_argument("--ports",
        metavar="COUNT", type=int,
        help="arbitrate COUNT inputs and COUNT resources (default: 8)")

    p_action = parser.add_subparsers(dest="action", metavar="ACTION", required=True)

    p_generate = p_action.add_parser("generate", parents=[p_design],
        help="generate RTLIL or Verilog from the design")
    p_generate.add_argument("-t", "--type", dest="generate_type",
        metavar="LANGUAGE", choices=["il", "v"],
        help="generate LANGUAGE (il for RTLIL, v for Verilog; default: file extension of FILE, if given)")
    p_generate.add_argument("-n", "--name",
        metavar="NAME", default="xbar_arbiter",
        help="name the toplevel module NAME (default: %(default)s)")
    p_generate.add_argument("--no-src", dest="emit_src", default=True, action="store_false",
        help="suppress generation of source location attributes")
    p_generate.add_argument("generate_file",
        metavar="FILE", type=argparse.FileType("w"), nargs="?",
        help="write generated code to FILE")

    p_simulate = p_action.add_parser("simulate", parents=[p_design],
        help="simulate the design and print the grants after every cycle")
    p_simulate.add_argument("--model", default=False, action="store_true",
        help="run the behavioral model instead of the gateware")
    p_simulate.add_argument("--trace", default=False, action="store_true",
        help="print every committed grant and priority change")
    p_simulate.add_argument("-v", "--vcd-file",
        metavar="VCD-FILE",
        help="write execution trace to VCD-FILE")
    p_simulate.add_argument("-w", "--gtkw-file",
        metavar="GTKW-FILE",
        help="write GTKWave configuration to GTKW-FILE")
    p_simulate.add_argument("-p", "--period", dest="sync_period",
        metavar="TIME", type=float, default=1e-6,
        help="set 'sync' clock domain period to TIME (default: %(default)s)")
    p_stimulus = p_simulate.add_mutually_exclusive_group(required=True)
    p_stimulus.add_argument("-s", "--scenario",
        metavar="NAME", choices=SCENARIOS,
        help="apply built-in scenario NAME (one of: {})".format(", ".join(SCENARIOS)))
    p_stimulus.add_argument("stimulus_file",
        metavar="STIMULUS", type=argparse.FileType("r"), nargs="?",
        help="apply the JSON Lines stimulus in STIMULUS ('-' for standard input)")

    return parser


def format_observation(number, observation):
    ports = len(observation.grant)
    grant = " ".join(str(value) for value in observation.grant)
    valid = to_binary(from_bits(observation.grant_valid), ports)
    return f"{number:4d}: grant {grant} valid {valid}"


def main_runner(parser, args, design=None):
    if design is not None:
        # A design built by the caller has a fixed port count, and `simulate` drives a bare
        # arbiter only.
        if args.ports is not None:
            parser.error("Port count cannot be changed for a design built by the caller")
        if args.action == "simulate":
            parser.error("Only the bare arbiter can be simulated, not a design built by the "
                         "caller")
    ports = 8 if args.ports is None else args.ports
    if ports < 2:
        parser.error(f"Port count must be at least 2, not {ports}")

    if args.action == "generate":
        if design is None:
            design = CrossbarArbiter(ports)
        generate_type = args.generate_type
        if generate_type is None and args.generate_file:
            if args.generate_file.name.endswith(".il"):
                generate_type = "il"
            if args.generate_file.name.endswith(".v"):
                generate_type = "v"
        if generate_type is None:
            parser.error("Unable to auto-detect language, specify explicitly with -t/--type")
        if generate_type == "il":
            output = rtlil.convert(design, name=args.name, emit_src=args.emit_src)
        if generate_type == "v":
            output = verilog.convert(design, name=args.name, emit_src=args.emit_src)
        if args.generate_file:
            with args.generate_file:
                args.generate_file.write(output)
        else:
            print(output)

    if args.action == "simulate":
        if args.scenario is not None:
            try:
                ticks = scenario(args.scenario, ports=ports)
            except ValueError as e:
                parser.error(str(e))
        else:
            with args.stimulus_file:
                try:
                    ticks = load_stimulus(args.stimulus_file, ports=ports)
                except StimulusError as e:
                    parser.error(f"{args.stimulus_file.name}: {e}")

        if args.model:
            if args.vcd_file or args.gtkw_file or args.trace:
                parser.error("Waveforms and tracing are only available when simulating gateware")
            observations = run_model(ticks, ports=ports)
        else:
            observations = simulate(ticks, ports=ports, trace=args.trace,
                                    vcd_file=args.vcd_file, gtkw_file=args.gtkw_file,
                                    period=args.sync_period)

        for number, observation in enumerate(observations, start=1):
            print(format_observation(number, observation))


def main(args=None, *, design=None):
    parser = main_parser()
    main_runner(parser, parser.parse_args(args), design)

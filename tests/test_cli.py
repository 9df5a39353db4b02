# amaranth: UnusedElaboratable=no

import os
import tempfile
from contextlib import redirect_stdout, redirect_stderr
from io import StringIO

from xbar_arbiter.arbiter import CrossbarArbiter
from xbar_arbiter.cli import main, format_observation
from xbar_arbiter.model import Observation

from .utils import *


SINGLE_OUTPUT = [
    "   1: grant 0 0 0 0 0 0 0 0 valid 00000000",
    "   2: grant 4 0 0 0 0 0 0 0 valid 00000001",
    "   3: grant 0 0 0 0 0 0 0 0 valid 00000000",
]


class CommandLineTestCase(FHDLTestCase):
    def run_main(self, args):
        output = StringIO()
        with redirect_stdout(output):
            main(args)
        return output.getvalue().splitlines()

    def assertUsageError(self, args, message, *, design=None):
        errors = StringIO()
        with redirect_stderr(errors), redirect_stdout(StringIO()):
            with self.assertRaises(SystemExit) as cm:
                main(args, design=design)
        self.assertEqual(cm.exception.code, 2)
        self.assertIn(message, errors.getvalue())

    def test_format_observation(self):
        observation = Observation([0, 3, 0, 1])
        self.assertEqual(format_observation(12, observation),
                         "  12: grant 0 3 0 1 valid 1010")

    def test_simulate_scenario(self):
        self.assertEqual(self.run_main(["simulate", "-s", "single"]), SINGLE_OUTPUT)

    def test_simulate_model(self):
        self.assertEqual(self.run_main(["simulate", "--model", "-s", "single"]), SINGLE_OUTPUT)

    def test_simulate_ports(self):
        lines = self.run_main(["simulate", "--ports", "4", "--scenario", "parallel"])
        self.assertEqual(lines, [
            "   1: grant 0 0 0 0 valid 0000",
            "   2: grant 2 3 4 1 valid 1111",
            "   3: grant 0 0 0 0 valid 0000",
        ])

    def test_simulate_trace(self):
        lines = self.run_main(["simulate", "--trace", "-s", "single"])
        self.assertEqual(lines, ["xbar: resource 3 -> input 0"] + SINGLE_OUTPUT)

    def test_simulate_stimulus_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "single.jsonl")
            with open(path, "w") as f:
                f.write('{"reset": true}\n')
                f.write('{"request": [4, 0, 0, 0, 0, 0, 0, 0]}\n')
                f.write('{}\n')
            self.assertEqual(self.run_main(["simulate", path]), SINGLE_OUTPUT)

    def test_simulate_vcd(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            vcd_path = os.path.join(tmpdir, "xbar.vcd")
            gtkw_path = os.path.join(tmpdir, "xbar.gtkw")
            lines = self.run_main(["simulate", "-s", "single", "-v", vcd_path, "-w", gtkw_path])
            self.assertEqual(lines, SINGLE_OUTPUT)
            with open(vcd_path) as f:
                vcd = f.read()
            self.assertIn("grant_valid", vcd)
            self.assertTrue(os.path.getsize(gtkw_path) > 0)

    def test_generate_rtlil(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "xbar.il")
            self.run_main(["generate", "--ports", "4", path])
            with open(path) as f:
                rtlil = f.read()
            self.assertIn("xbar_arbiter", rtlil)
            self.assertIn("grant_valid", rtlil)

    def test_generate_name(self):
        lines = self.run_main(["generate", "-t", "il", "-n", "arb", "--ports", "2"])
        self.assertTrue(any("module \\arb" in line for line in lines))

    def test_generate_unknown_type(self):
        self.assertUsageError(["generate"], "Unable to auto-detect language")

    def test_wrong_ports(self):
        self.assertUsageError(["simulate", "--ports", "1", "-s", "idle"],
                              "Port count must be at least 2, not 1")

    def test_scenario_too_small(self):
        self.assertUsageError(["simulate", "--ports", "4", "-s", "pair"],
                              "Scenario 'pair' needs at least 7 ports, not 4")

    def test_stimulus_and_scenario(self):
        self.assertUsageError(["simulate"], "one of the arguments")

    def test_bad_stimulus(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "bad.jsonl")
            with open(path, "w") as f:
                f.write('{"request": [4, 0]}\n')
            self.assertUsageError(["simulate", path],
                                  "Line 1: Request vector must have 8 entries, not 2")

    def test_model_waveforms(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            vcd_path = os.path.join(tmpdir, "xbar.vcd")
            self.assertUsageError(["simulate", "--model", "-s", "idle", "-v", vcd_path],
                                  "only available when simulating gateware")
        self.assertUsageError(["simulate", "--model", "--trace", "-s", "idle"],
                              "only available when simulating gateware")

    def test_generate_design(self):
        output = StringIO()
        with redirect_stdout(output):
            main(["generate", "-t", "il", "-n", "top"], design=CrossbarArbiter(3))
        self.assertIn("module \\top", output.getvalue())
        self.assertIn("grant_valid", output.getvalue())

    def test_design_ports(self):
        self.assertUsageError(["generate", "-t", "il", "--ports", "4"],
                              "Port count cannot be changed for a design built by the caller",
                              design=CrossbarArbiter(4))

    def test_design_simulate(self):
        self.assertUsageError(["simulate", "-s", "single"],
                              "Only the bare arbiter can be simulated",
                              design=CrossbarArbiter())

import unittest
from collections import Counter

from amaranth.sim import Simulator


__all__ = ["FHDLTestCase"]


class FHDLTestCase(unittest.TestCase):
    maxDiff = None

    def assertInvariants(self, observations):
        """Check the properties every visible grant vector must have, whatever the inputs."""
        for number, observation in enumerate(observations, start=1):
            with self.subTest(tick=number):
                grant = observation.grant
                # Mutual exclusion: a resource is granted to one input at most.
                granted = Counter(value for value in grant if value != 0)
                self.assertTrue(all(count == 1 for count in granted.values()),
                                f"resource granted twice in {grant!r}")
                # Self-request exclusion.
                for index, value in enumerate(grant):
                    self.assertNotEqual(value, index + 1,
                                        f"input {index} granted its own resource")
                self.assertEqual(observation.grant_valid, tuple(value != 0 for value in grant))

    def assertGrants(self, observation, expected):
        """Compare a visible grant vector against ``{input: one-based resource}``."""
        grant = [0] * len(observation.grant)
        for index, value in expected.items():
            grant[index] = value
        self.assertEqual(observation.grant, tuple(grant))
        self.assertEqual(observation.grant_valid, tuple(value != 0 for value in grant))

    def run_testbench(self, dut, testbench, *, clock=True):
        sim = Simulator(dut)
        if clock:
            sim.add_clock(1e-6)
        sim.add_testbench(testbench)
        sim.run()

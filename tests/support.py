"""Shared wiring for the test suites."""

from privsalary import HandleScheme, LocalDecryptionOracle, SalaryAggregator
from privsalary.util import ManualClock

OWNER = "0xowner"
ALICE = "0xalice"
BOB = "0xbob"
MALLORY = "0xmallory"
COOLDOWN = 60


class World:
    """Aggregator, scheme, oracle and clock wired together."""

    def __init__(self, cooldown: int = COOLDOWN, providers=(ALICE, BOB), event_log=None):
        self.clock = ManualClock()
        self.scheme = HandleScheme()
        self.oracle = LocalDecryptionOracle(self.scheme)
        self.scheme.trust_oracle_key(self.oracle.kid, self.oracle.verify_key_b64)
        self.agg = SalaryAggregator(
            owner=OWNER,
            capability=self.scheme,
            oracle=self.oracle,
            cooldown_seconds=cooldown,
            event_log=event_log,
            clock=self.clock,
        )
        for provider in providers:
            self.agg.add_provider(OWNER, provider)

    def submit(self, caller, salary, company_size, years):
        enc = self.scheme.encrypt
        self.agg.submit_salary_data(caller, enc(salary), enc(company_size), enc(years))

    def wait(self, seconds=None):
        self.clock.advance(COOLDOWN if seconds is None else seconds)

    def closed_batch(self, *rows):
        """Open a batch, submit rows from distinct providers, close it."""
        callers = [OWNER, ALICE, BOB]
        self.agg.open_batch(OWNER)
        for caller, row in zip(callers, rows):
            self.submit(caller, *row)
        self.agg.close_batch(OWNER)
        return self.agg.batch_id

"""
privsalary Aggregation Ledger

Running encrypted sums and count for the current batch. The ledger keeps
aggregates only; it never records who contributed what.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .encryption import Ciphertext, EncryptionCapability

# Canonical field order. Binding hashes and cleartext decoding depend on it.
FIELDS: Tuple[str, ...] = ("salary", "company_size", "years_experience")


@dataclass(frozen=True)
class LedgerSnapshot:
    """Opaque view of the ledger for external readers."""
    salary: Optional[str]
    company_size: Optional[str]
    years_experience: Optional[str]
    count: Optional[str]

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "salary": self.salary,
            "company_size": self.company_size,
            "years_experience": self.years_experience,
            "count": self.count,
        }


@dataclass(frozen=True)
class StagedUpdate:
    """Sums and count after one submission, not yet applied."""
    sums: Dict[str, Ciphertext]
    count: Ciphertext


class AggregationLedger:
    """
    Encrypted sums for salary, company size and years of experience, plus
    an encrypted submission count.

    Fields are None until materialised, either by ``reset_for_new_batch`` or
    lazily by the first ``accumulate``.
    """

    def __init__(self, capability: EncryptionCapability):
        self._fhe = capability
        self._sums: Dict[str, Optional[Ciphertext]] = {f: None for f in FIELDS}
        self._count: Optional[Ciphertext] = None

    def reset_for_new_batch(self) -> None:
        zero = self._fhe.zero()
        self._sums = {f: zero for f in FIELDS}
        self._count = zero

    def stage(self, salary: Ciphertext, company_size: Ciphertext, years_experience: Ciphertext) -> StagedUpdate:
        """Compute the post-submission sums and count without applying them."""
        values = {"salary": salary, "company_size": company_size, "years_experience": years_experience}
        updated = {}
        for field in FIELDS:
            current = self._sums[field] if self._sums[field] is not None else self._fhe.zero()
            updated[field] = self._fhe.add(current, values[field])
        count = self._count if self._count is not None else self._fhe.zero()
        return StagedUpdate(sums=updated, count=self._fhe.add(count, self._fhe.one()))

    def commit(self, staged: StagedUpdate) -> None:
        self._sums = dict(staged.sums)
        self._count = staged.count

    def accumulate(self, salary: Ciphertext, company_size: Ciphertext, years_experience: Ciphertext) -> None:
        self.commit(self.stage(salary, company_size, years_experience))

    @property
    def count(self) -> Ciphertext:
        return self._count if self._count is not None else self._fhe.zero()

    def sum(self, field: str) -> Ciphertext:
        value = self._sums[field]
        return value if value is not None else self._fhe.zero()

    def has_submissions(self) -> bool:
        """Zero test on the encrypted count. Reveals only that bit."""
        return not self._fhe.is_zero(self.count)

    def averages(self) -> List[Ciphertext]:
        """Encrypted sum / count for each field, in canonical order."""
        count = self.count
        return [self._fhe.div(self.sum(f), count) for f in FIELDS]

    def snapshot(self) -> LedgerSnapshot:
        def _hex(c: Optional[Ciphertext]) -> Optional[str]:
            return c.hex() if c is not None else None
        return LedgerSnapshot(
            salary=_hex(self._sums["salary"]),
            company_size=_hex(self._sums["company_size"]),
            years_experience=_hex(self._sums["years_experience"]),
            count=_hex(self._count),
        )

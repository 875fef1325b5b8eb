"""credgate.credentials.tester

Live connectivity checks are somebody else's job. This module only names
the contract and the result shape that gets relayed back to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from credgate.core.models import DecryptedCredential
from credgate.core.types import User


class TestStatus(StrEnum):
    __test__ = False

    OK = "OK"
    ERROR = "Error"


@dataclass(frozen=True, slots=True)
class CredentialTestResult:
    __test__ = False

    status: TestStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == TestStatus.OK


class CredentialTester(Protocol):
    def test_credentials(
        self,
        user: User,
        credential_type: str,
        credentials: DecryptedCredential,
    ) -> CredentialTestResult: ...

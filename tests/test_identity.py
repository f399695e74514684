from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from buildsetup.identity import CallerIdentity, IdentityResolutionError, resolve_caller_identity


class _FakeSts:
    def __init__(self, response: dict | None = None, error: Exception | None = None) -> None:
        self.response = response or {}
        self.error = error
        self.calls = 0

    def get_caller_identity(self) -> dict:
        self.calls += 1
        if self.error:
            raise self.error
        return self.response


def test_explicit_account_skips_sts() -> None:
    sts = _FakeSts(error=AssertionError("STS should not be called"))
    identity = resolve_caller_identity(account_id="123456789012", client=sts)

    assert identity == CallerIdentity(account_id="123456789012", partition="aws")
    assert sts.calls == 0


def test_sts_lookup_derives_partition() -> None:
    sts = _FakeSts({"Account": "210987654321", "Arn": "arn:aws-cn:iam::210987654321:user/ci"})
    identity = resolve_caller_identity(client=sts)

    assert identity.account_id == "210987654321"
    assert identity.partition == "aws-cn"
    assert identity.policy_arn("AdministratorAccess") == "arn:aws-cn:iam::210987654321:policy/AdministratorAccess"


def test_sts_failure_is_wrapped() -> None:
    error = ClientError({"Error": {"Code": "ExpiredToken", "Message": "expired"}}, "GetCallerIdentity")
    with pytest.raises(IdentityResolutionError, match="ExpiredToken"):
        resolve_caller_identity(client=_FakeSts(error=error))


@pytest.mark.parametrize("account_id", ["", "12345", "12345678901a"])
def test_invalid_account_ids_are_rejected(account_id: str) -> None:
    with pytest.raises(IdentityResolutionError):
        CallerIdentity(account_id=account_id)

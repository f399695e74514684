"""Caller identity lookup used to scope account-specific ARNs."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

LOGGER = logging.getLogger(__name__)

_ACCOUNT_ID = re.compile(r"^\d{12}$")


class IdentityResolutionError(RuntimeError):
    """Raised when the caller's AWS account cannot be determined."""


@dataclass(frozen=True)
class CallerIdentity:
    account_id: str
    partition: str = "aws"

    def __post_init__(self) -> None:
        if not _ACCOUNT_ID.match(self.account_id):
            raise IdentityResolutionError(f"Invalid AWS account id '{self.account_id}'; expected 12 digits.")
        if not self.partition:
            raise IdentityResolutionError("AWS partition must not be empty.")

    def policy_arn(self, policy_name: str) -> str:
        return f"arn:{self.partition}:iam::{self.account_id}:policy/{policy_name}"


def _partition_from_arn(arn: str) -> str:
    parts = arn.split(":")
    if len(parts) < 2 or parts[0] != "arn" or not parts[1]:
        return "aws"
    return parts[1]


def resolve_caller_identity(
    *,
    account_id: Optional[str] = None,
    partition: Optional[str] = None,
    client: Optional[object] = None,
) -> CallerIdentity:
    """Use explicit values when given, otherwise ask STS who we are."""
    if account_id:
        return CallerIdentity(account_id=account_id, partition=partition or "aws")

    import boto3
    from botocore.exceptions import BotoCoreError, ClientError

    sts = client or boto3.client("sts")
    try:
        response = sts.get_caller_identity()
    except (ClientError, BotoCoreError) as exc:
        raise IdentityResolutionError(f"Unable to resolve caller identity via STS: {exc}") from exc

    resolved = CallerIdentity(
        account_id=str(response.get("Account", "")),
        partition=partition or _partition_from_arn(str(response.get("Arn", ""))),
    )
    LOGGER.info("Resolved caller identity: account %s (%s)", resolved.account_id, resolved.partition)
    return resolved


__all__ = ["CallerIdentity", "IdentityResolutionError", "resolve_caller_identity"]

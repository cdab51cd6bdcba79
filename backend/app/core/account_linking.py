"""Account linking logic for federated (Google) sign-in.

One email, one account, regardless of which method proves it. A user who
registered locally and later signs in with Google under the same email
is merged into the original account rather than forked.

Rules (first match wins):
1. An account already linked to this federated id → returning user
2. An account exists with the claimed email → link it
3. No matching account → create one, pre-verified

Security: Rules 2 and 3 require the provider to have verified the email.
Otherwise anyone could claim an address at Google and take over the
local account that owns it.

Names are only taken from the provider when creating an account or when
the linked account still carries the placeholder name. Repeat logins
never overwrite names.
"""

import logging
from dataclasses import dataclass

from app.core.errors import DuplicateEmailError, UnverifiedFederatedEmailError
from app.models.account import (
    PLACEHOLDER_FIRST_NAME,
    PLACEHOLDER_LAST_NAME,
    Account,
    AuthMethod,
)
from app.repositories.account_store import AccountStore, NewAccount, normalize_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FederatedClaims:
    """Identity claims yielded by a completed external handshake.

    Attributes:
        provider_id: Stable provider-assigned subject identifier.
        email: Email address asserted by the provider.
        given_name: First name from the provider profile.
        family_name: Last name from the provider profile.
        photo_url: Profile photo URL, if the provider has one.
        email_verified: Whether the provider has verified ``email``.
    """

    provider_id: str
    email: str
    given_name: str
    family_name: str
    photo_url: str | None = None
    email_verified: bool = False


def _link(account: Account, claims: FederatedClaims) -> None:
    account.federated_id = claims.provider_id
    account.last_used_method = AuthMethod.FEDERATED
    if claims.photo_url:
        account.profile_image_url = claims.photo_url
    # Trust the provider's own verification of the address
    account.is_verified = True
    if account.has_placeholder_name:
        account.first_name = claims.given_name or PLACEHOLDER_FIRST_NAME
        account.last_name = claims.family_name or PLACEHOLDER_LAST_NAME


async def _link_existing(
    store: AccountStore, account: Account, claims: FederatedClaims
) -> Account:
    if account.federated_id == claims.provider_id:
        # A concurrent sign-in with the same subject created it first
        return account
    if account.federated_id is not None:
        # Linked to another subject under the same email; keep that link
        logger.warning(
            "Email already linked to a different federated identity",
            extra={"account_id": str(account.id)},
        )
        return account

    _link(account, claims)
    account = await store.save(account)
    logger.info(
        "Linked federated identity to existing account",
        extra={"account_id": str(account.id)},
    )
    return account


async def find_or_create_account_for_federated(
    *,
    store: AccountStore,
    claims: FederatedClaims,
) -> tuple[Account, bool]:
    """Resolve the account for a federated sign-in.

    Args:
        store: Account store.
        claims: Provider claims.

    Returns:
        Tuple of (Account, created) where created is True if a new
        account was made.

    Raises:
        UnverifiedFederatedEmailError: If the claims would link or create
            an account but the provider did not verify the email.
    """
    email = normalize_email(claims.email)

    # Step 1: Returning user
    account = await store.find_by_federated_id(claims.provider_id)
    if account is not None:
        logger.info(
            "Returning federated user",
            extra={"account_id": str(account.id)},
        )
        return account, False

    if not claims.email_verified:
        logger.warning(
            "Federated sign-in rejected: provider did not verify email",
            extra={"provider_id": claims.provider_id},
        )
        raise UnverifiedFederatedEmailError()

    # Step 2: Link by email
    account = await store.find_by_email(email)
    if account is not None:
        return await _link_existing(store, account, claims), False

    # Step 3: Create
    try:
        account = await store.create(
            NewAccount(
                email=email,
                first_name=claims.given_name or PLACEHOLDER_FIRST_NAME,
                last_name=claims.family_name or PLACEHOLDER_LAST_NAME,
                federated_id=claims.provider_id,
                profile_image_url=claims.photo_url,
                last_used_method=AuthMethod.FEDERATED,
                is_verified=True,
            )
        )
    except DuplicateEmailError:
        # Lost a create race; the winner's account gets linked instead
        existing = await store.find_by_email(email)
        if existing is None:
            raise
        return await _link_existing(store, existing, claims), False

    logger.info(
        "Created new federated user",
        extra={"account_id": str(account.id)},
    )
    return account, True

"""
Customer identity service.

Resolves who is paying for an order and makes sure their directory entry
has what fulfilment needs (email, name, phone, `customer` role).

Usage:
    from identity.services import CustomerIdentityService

    identity = CustomerIdentityService(keycloak_client)

    result = identity.resolve_customer(
        session_customer_id=None,
        email="jane@example.com",
        name="Jane Doe",
        phone="+447700900000",
    )
    if not result.success and result.error_code == EXISTING_ACCOUNT:
        ...  # send the customer to log in
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from identity.clients import IdentityUser, KeycloakClient


EXISTING_ACCOUNT = "EXISTING_ACCOUNT"
CUSTOMER_ROLE = "customer"
PHONE_ATTRIBUTE = "phone"
NEW_ACCOUNT_ACTIONS = ("UPDATE_PASSWORD", "UPDATE_PROFILE", "VERIFY_EMAIL")


@dataclass
class CustomerDetails:
    """Contact details entered on the checkout form."""

    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None


class CustomerIdentityService(BaseService):
    """
    Resolve and enrich paying customers in the user directory.

    The directory client is injected; the app wiring passes the
    process-wide KeycloakClient.
    """

    def __init__(self, directory: KeycloakClient):
        self.directory = directory

    def resolve_customer(
        self,
        session_customer_id: uuid.UUID | None,
        email: str,
        name: str,
        phone: str,
    ) -> ServiceResult[uuid.UUID]:
        """
        Find the customer for a new inline order.

        - A logged-in customer is used as is.
        - An anonymous caller whose email already has an account must log
          in first: failure with error_code EXISTING_ACCOUNT.
        - Otherwise an account is created and the customer is asked by
          email to finish setting it up.

        Returns:
            ServiceResult with the customer id

        Raises:
            IdentityProviderError: Directory calls failed
        """
        logger = self.get_logger()

        if session_customer_id is not None:
            return ServiceResult.success(session_customer_id)

        existing = self.directory.get_user_by_email(email)
        if existing is not None:
            logger.info(
                "Anonymous checkout for existing account",
                extra={"user_id": str(existing.id)},
            )
            return ServiceResult.failure(
                "An account already exists for this email address",
                error_code=EXISTING_ACCOUNT,
            )

        user = self.directory.create_user(email)
        user.first_name = name
        user.set_attribute(PHONE_ATTRIBUTE, phone)
        self.directory.update_user(user)
        self.directory.set_required_actions(user, NEW_ACCOUNT_ACTIONS)

        logger.info("Created account for new customer", extra={"user_id": str(user.id)})
        return ServiceResult.success(user.id)

    def prepare_customer(
        self,
        customer_id: uuid.UUID,
        details: CustomerDetails,
        billing_phone: str | None = None,
    ) -> IdentityUser:
        """
        Grant the customer role and fill in missing profile fields.

        Only fields the directory does not already have are written; the
        phone attribute falls back to the billing address phone.

        Returns:
            The updated directory entry
        """
        user = self.directory.get_user(customer_id)
        user = self.directory.add_realm_roles(user, [CUSTOMER_ROLE])

        if user.email is None:
            user.email = details.email
        if user.first_name is None:
            user.first_name = details.first_name
        if user.last_name is None:
            user.last_name = details.last_name
        if not user.has_attribute(PHONE_ATTRIBUTE):
            phone = details.phone or billing_phone
            if phone:
                user.set_attribute(PHONE_ATTRIBUTE, phone)

        self.directory.update_user(user)
        return user

    def get_customer(self, customer_id: uuid.UUID) -> IdentityUser:
        return self.directory.get_user(customer_id)

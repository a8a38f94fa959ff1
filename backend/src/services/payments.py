"""
Competition entry through payment records.

Entering a competition inserts one row into ``payments``; the table's unique
constraint on (user_id, competition_id) is what rejects a second entry.
"""

import logging
from typing import Any, Dict

from postgrest.exceptions import APIError

from database.supabase_client import SupabaseClient
from services.competitions import FREE_ENTRY, PAID_ENTRY
from services.errors import (
    ErrorCode,
    PG_FOREIGN_KEY_VIOLATION,
    PG_UNIQUE_VIOLATION,
    PaymentEntryError,
    ServiceResponse,
    wrap_unexpected,
)

logger = logging.getLogger(__name__)


class PaymentEntryService:
    """Creates and checks competition entries."""

    def __init__(self, db_client: SupabaseClient):
        self.db_client = db_client

    def enter_competition(
        self,
        user_id: str,
        competition_id: str,
        entry_fee: float,
        payment_type: str
    ) -> ServiceResponse[Dict[str, Any]]:
        """
        Record an entry. Free entries complete immediately; paid entries are
        stored as pending until the checkout completes elsewhere.
        """
        if not user_id:
            return ServiceResponse.failure(PaymentEntryError.validation("User ID is required."))
        if not competition_id:
            return ServiceResponse.failure(PaymentEntryError.validation("Competition ID is required."))
        if payment_type not in (FREE_ENTRY, PAID_ENTRY):
            return ServiceResponse.failure(
                PaymentEntryError.validation(f"Unknown payment type: {payment_type}")
            )

        is_free = payment_type == FREE_ENTRY
        payment_data = {
            "user_id": user_id,
            "competition_id": competition_id,
            "amount": 0 if is_free else entry_fee,
            "payment_status": "completed" if is_free else "pending",
            "payment_type": payment_type,
        }

        try:
            payment = self.db_client.insert_payment(payment_data)
        except APIError as e:
            if e.code == PG_UNIQUE_VIOLATION:
                logger.info("Duplicate competition entry", extra={
                    "user_id": user_id,
                    "competition_id": competition_id
                })
                return ServiceResponse.failure(PaymentEntryError(
                    "User has already paid or entered this competition.",
                    ErrorCode.ALREADY_PAID_OR_ENTERED,
                    e
                ))
            if e.code == PG_FOREIGN_KEY_VIOLATION:
                return ServiceResponse.failure(PaymentEntryError(
                    "Competition or User not found.",
                    ErrorCode.NOT_FOUND,
                    e
                ))
            return ServiceResponse.failure(wrap_unexpected(
                PaymentEntryError, "Failed to record competition entry payment.", e,
                user_id=user_id, competition_id=competition_id
            ))
        except Exception as e:
            return ServiceResponse.failure(wrap_unexpected(
                PaymentEntryError, "An unexpected error occurred while processing the entry.", e,
                user_id=user_id, competition_id=competition_id
            ))

        if payment is None:
            return ServiceResponse.failure(
                PaymentEntryError.database("Failed to retrieve payment data after insert.")
            )

        logger.info("Recorded competition entry", extra={
            "user_id": user_id,
            "competition_id": competition_id,
            "payment_type": payment_type
        })
        return ServiceResponse.success(payment)

    def check_user_entry(self, user_id: str, competition_id: str) -> ServiceResponse[Dict[str, bool]]:
        """{"isEntered": bool} for a user and competition."""
        if not user_id:
            return ServiceResponse.failure(PaymentEntryError.validation("User ID is required."))
        if not competition_id:
            return ServiceResponse.failure(PaymentEntryError.validation("Competition ID is required."))
        try:
            count = self.db_client.count_payments(user_id, competition_id)
            return ServiceResponse.success({"isEntered": count > 0})
        except Exception as e:
            return ServiceResponse.failure(wrap_unexpected(
                PaymentEntryError, "Failed to check competition entry status via payments.", e,
                user_id=user_id, competition_id=competition_id
            ))

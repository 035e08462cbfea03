"""
Base service layer patterns.

- ServiceResult: Outcome of an operation whose failure is an expected branch
- BaseService: Per-class logger and transaction helper

Expected branches (an anonymous shopper whose email already has an
account) come back as a ServiceResult. Failures the caller cannot
continue from are raised as core.exceptions.BaseApplicationError.

Usage:
    from core.services import BaseService, ServiceResult

    class CustomerIdentityService(BaseService):
        def resolve_customer(self, ...) -> ServiceResult[uuid.UUID]:
            if existing is not None:
                return ServiceResult.failure(
                    "An account already exists for this email address",
                    error_code="EXISTING_ACCOUNT",
                )
            return ServiceResult.success(user.id)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Success with data, or failure with a message and machine-readable code.

    Attributes:
        success: Whether the operation succeeded
        data: Result data (None on failure)
        error: Human-readable failure message
        error_code: Failure code callers branch on
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code)

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service classes.

    Services hold no request state; collaborators are injected through
    the constructor or passed per call.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named `<module>.<ClassName>` so one service can be filtered."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Run the block in a database transaction.

        Example:
            with cls.atomic():
                payment = Payment.objects.create(...)
                PaymentItem.objects.bulk_create(items)
        """
        with transaction.atomic():
            yield

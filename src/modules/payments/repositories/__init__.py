"""Payment repositories: the interface and its Django ORM implementation."""

from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.repositories.interfaces import IPaymentRepository

__all__ = ["IPaymentRepository", "PaymentDjangoRepository"]

"""Ticket service layer (Use Cases).

``TicketCoordinator`` owns the ticket lifecycle:

- ``open_for_order``: idempotent lookup-or-create, guarded by the unique
  order reference; ``ticket.created`` only when a row was inserted.
- ``open_for_submitter``: the order owner's support request.  A paid order
  gets its ticket (or the existing one, filled in with the submitter's
  subject, priority and category if still blank).
- ``claim``: compare-and-set on ``claimed_by``; exactly one concurrent
  claimant wins.
- ``assign``: administrator override of ``claimed_by``.
- ``update_status``: administrators, or the staff member holding the
  claim, may close out an OPEN ticket; RESOLVED also places the order.
- ``add_note``: append-only staff notes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound
from modules.tickets.constants import (
    MAX_NOTE_LENGTH,
    TICKET_ID_MAX_RETRIES,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from modules.tickets.events import TicketClaimed, TicketCreated, TicketStatusChanged
from modules.tickets.exceptions import (
    AssigneeNotFound,
    InvalidTicketNote,
    InvalidTicketStatus,
    TicketAlreadyClaimed,
    TicketForbidden,
    TicketNotFound,
)
from modules.tickets.models import Ticket

if TYPE_CHECKING:
    from modules.core.actors import Actor
    from modules.core.repositories.users import IUserRepository
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import OrderLedger
    from modules.tickets.dtos import OpenTicketDTO
    from modules.tickets.repositories.interfaces import ITicketRepository
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TicketStatusUpdate:
    ticket: Ticket
    order_status: Optional[str]


class TicketCoordinator:
    """Application service for Ticket use-cases.

    Receives repositories, the order ledger and the event bus via
    constructor injection (DIP).
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        order_repository: IOrderRepository,
        user_repository: IUserRepository,
        order_ledger: OrderLedger,
        event_bus: IEventBus,
    ) -> None:
        self._ticket_repo = ticket_repository
        self._order_repo = order_repository
        self._user_repo = user_repository
        self._ledger = order_ledger
        self._event_bus = event_bus

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def open_for_order(
        self,
        order_id: str,
        category: str = TicketCategory.GENERAL,
        subject: str = "",
        priority: str = TicketPriority.MEDIUM,
    ) -> tuple[Ticket, bool]:
        """Return the order's ticket, creating an OPEN one if none exists.

        Raises:
            OrderNotFound: order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        for attempt in range(TICKET_ID_MAX_RETRIES):
            defaults = {
                "ticket_id": Ticket.generate_ticket_id(),
                "submitter_id": order.owner_id,
                "status": TicketStatus.OPEN,
                "category": category,
                "subject": subject,
                "priority": priority,
            }
            try:
                ticket, created = self._ticket_repo.get_or_create_for_order(
                    order, defaults
                )
                break
            except IntegrityError:
                # get_or_create already resolves races on the order itself,
                # so this is a ticket_id collision.
                logger.warning(
                    "ticket.id_collision", order_id=order_id, attempt=attempt + 1
                )
        else:
            raise RuntimeError(
                f"Failed to generate unique ticket_id after "
                f"{TICKET_ID_MAX_RETRIES} attempts"
            )

        if created:
            logger.info("ticket.created", ticket_id=ticket.ticket_id, order_id=order_id)
            self._event_bus.publish(
                TicketCreated(ticket_id=ticket.ticket_id, order_id=order_id)
            )
        return ticket, created

    def open_for_submitter(
        self, dto: OpenTicketDTO, actor: Actor
    ) -> tuple[Ticket, bool]:
        """Open (or return) the ticket for one of the actor's own orders.

        Tickets exist only for paid orders, so an order without one must be
        PLACED.  An existing OPEN ticket with no subject yet takes the
        submitter's subject, priority and category.

        Raises:
            OrderNotFound: order does not exist or belongs to someone else.
            InvalidOrderStatus: the order has no ticket and is not paid.
        """
        order = self._order_repo.get_by_id(dto.order_id)
        if not order or order.owner_id != actor.id:
            raise OrderNotFound(f"Order {dto.order_id} not found.")

        existing = self._ticket_repo.get_by_order(dto.order_id)
        if existing is None and order.status != OrderStatus.PLACED:
            raise InvalidOrderStatus(
                f"Order {dto.order_id} is {order.status}; support tickets open "
                "once the order is paid."
            )

        ticket, created = self.open_for_order(
            dto.order_id,
            category=dto.category,
            subject=dto.subject,
            priority=dto.priority,
        )
        if not created:
            ticket = self._fill_in_details(ticket.ticket_id, dto)
        return ticket, created

    def claim(self, ticket_id: str, actor: Actor) -> Ticket:
        """Take exclusive ownership of an unclaimed OPEN ticket.

        Raises:
            TicketForbidden: the actor is not staff.
            TicketNotFound: ticket does not exist.
            InvalidTicketStatus: the ticket is no longer OPEN.
            TicketAlreadyClaimed: another staff member owns the ticket.
        """
        if not actor.is_staff:
            raise TicketForbidden("Only staff members can claim tickets.")

        log = logger.bind(ticket_id=ticket_id, staff_id=actor.id)
        claimed = self._ticket_repo.claim(ticket_id, actor.id)
        ticket = self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFound(f"Ticket {ticket_id} not found.")

        if not claimed:
            if ticket.claimed_by_id == actor.id and not ticket.is_terminal:
                log.info("ticket.claim_repeated")
                return ticket
            if ticket.is_terminal:
                raise InvalidTicketStatus(
                    f"Ticket {ticket_id} is {ticket.status} and cannot be claimed."
                )
            log.info("ticket.claim_lost", claimed_by=ticket.claimed_by_id)
            raise TicketAlreadyClaimed(
                f"Ticket {ticket_id} is already claimed by another staff member."
            )

        log.info("ticket.claimed")
        self._event_bus.publish(TicketClaimed(ticket_id=ticket_id, staff_id=actor.id))
        return ticket

    def assign(self, ticket_id: str, staff_id: int, actor: Actor) -> Ticket:
        """Administrator override: set ``claimed_by`` to ``staff_id``.

        Raises:
            TicketForbidden: the actor is not an administrator, or the
                assignee is not a staff member.
            AssigneeNotFound: the assignee does not exist.
            TicketNotFound: ticket does not exist.
            InvalidTicketStatus: the ticket is no longer OPEN.
        """
        if not actor.is_admin:
            raise TicketForbidden("Only administrators can assign tickets.")

        assignee = self._user_repo.get_actor(staff_id)
        if assignee is None:
            raise AssigneeNotFound(f"User {staff_id} not found.")
        if not assignee.is_staff:
            raise TicketForbidden("Tickets can only be assigned to staff members.")

        if not self._ticket_repo.assign(ticket_id, staff_id):
            ticket = self._ticket_repo.get_by_id(ticket_id)
            if ticket is None:
                raise TicketNotFound(f"Ticket {ticket_id} not found.")
            raise InvalidTicketStatus(
                f"Ticket {ticket_id} is {ticket.status} and cannot be assigned."
            )

        logger.info(
            "ticket.assigned", ticket_id=ticket_id, staff_id=staff_id, admin_id=actor.id
        )
        self._event_bus.publish(TicketClaimed(ticket_id=ticket_id, staff_id=staff_id))
        return self.get_ticket(ticket_id)

    def update_status(
        self, ticket_id: str, new_status: str, actor: Actor
    ) -> TicketStatusUpdate:
        """Move an OPEN ticket to RESOLVED, CLOSED or CANCELLED.

        RESOLVED also advances the order to PLACED (no-op if already placed).

        Raises:
            InvalidTicketStatus: unknown status, or illegal transition.
            TicketForbidden: the actor is neither an administrator nor the
                staff member holding the claim.
            TicketNotFound: ticket does not exist.
        """
        target = (new_status or "").strip().upper()
        if target not in TicketStatus.values:
            raise InvalidTicketStatus(f"Unknown ticket status: {new_status}.")
        if not actor.is_staff:
            raise TicketForbidden("Only staff members can update ticket status.")

        log = logger.bind(ticket_id=ticket_id, actor_id=actor.id, new_status=target)
        with transaction.atomic():
            ticket = self._ticket_repo.get_for_update(ticket_id)
            if ticket is None:
                raise TicketNotFound(f"Ticket {ticket_id} not found.")
            if not actor.is_admin and ticket.claimed_by_id != actor.id:
                log.warning("ticket.update_forbidden", claimed_by=ticket.claimed_by_id)
                raise TicketForbidden("You can only update tickets you have claimed.")
            if not ticket.can_transition_to(target):
                raise InvalidTicketStatus(
                    f"Cannot transition ticket from {ticket.status} to {target}."
                )

            ticket.status = target
            self._ticket_repo.save(ticket)

            order_status = ticket.order.status
            if target == TicketStatus.RESOLVED:
                try:
                    order = self._ledger.mark_placed(
                        ticket.order.order_id, notes=f"Ticket {ticket_id} resolved"
                    )
                    order_status = order.status
                except InvalidOrderStatus as exc:
                    log.warning("ticket.order_not_placeable", error=str(exc))

        log.info("ticket.status_updated", order_status=order_status)
        self._event_bus.publish(
            TicketStatusChanged(
                ticket_id=ticket_id, status=target, order_status=order_status
            )
        )
        return TicketStatusUpdate(ticket=ticket, order_status=order_status)

    def add_note(self, ticket_id: str, note: str, actor: Actor) -> Ticket:
        """Append an admin note; existing notes are never edited.

        Raises:
            TicketForbidden: the actor is not staff.
            InvalidTicketNote: empty or oversized note.
            TicketNotFound: ticket does not exist.
        """
        if not actor.is_staff:
            raise TicketForbidden("Only staff members can add notes.")
        text = (note or "").strip()
        if not text:
            raise InvalidTicketNote("Note must not be empty.")
        if len(text) > MAX_NOTE_LENGTH:
            raise InvalidTicketNote(
                f"Note must be at most {MAX_NOTE_LENGTH} characters."
            )

        with transaction.atomic():
            ticket = self._ticket_repo.get_for_update(ticket_id)
            if ticket is None:
                raise TicketNotFound(f"Ticket {ticket_id} not found.")
            ticket.admin_notes = [
                *(ticket.admin_notes or []),
                {
                    "author_id": actor.id,
                    "note": text,
                    "created_at": timezone.now().isoformat(),
                },
            ]
            self._ticket_repo.save(ticket)

        logger.info("ticket.note_added", ticket_id=ticket_id, author_id=actor.id)
        return ticket

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = self._ticket_repo.get_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFound(f"Ticket {ticket_id} not found.")
        return ticket

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fill_in_details(self, ticket_id: str, dto: OpenTicketDTO) -> Ticket:
        with transaction.atomic():
            ticket = self._ticket_repo.get_for_update(ticket_id)
            if ticket is None:
                raise TicketNotFound(f"Ticket {ticket_id} not found.")
            if ticket.subject or ticket.status != TicketStatus.OPEN:
                return ticket
            ticket.subject = dto.subject
            ticket.priority = dto.priority
            ticket.category = dto.category
            self._ticket_repo.save(ticket)

        logger.info(
            "ticket.details_added",
            ticket_id=ticket_id,
            priority=ticket.priority,
            category=ticket.category,
        )
        return ticket

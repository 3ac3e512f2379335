from django.apps import AppConfig


class TicketsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.tickets"
    label = "tickets"

    def ready(self) -> None:
        from modules.tickets.handlers import TICKET_EVENTS, ticket_notification_handler
        from shared.infrastructure.bus import event_bus

        for event_class in TICKET_EVENTS:
            event_bus.subscribe(event_class, ticket_notification_handler)

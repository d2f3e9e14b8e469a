"""Errores de dominio compartidos por tickets, orders y cortesías.

Los mensajes son aptos para mostrarse tal cual al comprador.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    TICKET_TYPE_NOT_FOUND = "TICKET_TYPE_NOT_FOUND"
    TICKET_TYPE_UNAVAILABLE = "TICKET_TYPE_UNAVAILABLE"
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    DISCOUNT_REJECTED = "DISCOUNT_REJECTED"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    ORDER_NOT_PAYABLE = "ORDER_NOT_PAYABLE"
    RETRYABLE = "RETRYABLE"
    COURTESY_NOT_FOUND = "COURTESY_NOT_FOUND"
    COURTESY_ALREADY_CLAIMED = "COURTESY_ALREADY_CLAIMED"
    COURTESY_EXPIRED = "COURTESY_EXPIRED"
    ATTENDEE_REQUIRED = "ATTENDEE_REQUIRED"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    INVALID_QR = "INVALID_QR"


@dataclass(eq=False)
class DomainError(Exception):
    """Error base con código y mensaje seguro para el usuario."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class OrderPayloadError(DomainError):
    def __init__(self, message: str = "Datos de orden inválidos") -> None:
        super().__init__(code=ErrorCode.INVALID_PAYLOAD, message=message)


class EventNotFoundError(DomainError):
    def __init__(self, event_id) -> None:
        super().__init__(code=ErrorCode.EVENT_NOT_FOUND, message="Evento no encontrado")
        self.event_id = event_id


class TicketTypeNotFoundError(DomainError):
    def __init__(self, ticket_type_id) -> None:
        super().__init__(
            code=ErrorCode.TICKET_TYPE_NOT_FOUND,
            message=f"Tipo de entrada no encontrado: {ticket_type_id}",
        )
        self.ticket_type_id = ticket_type_id


class TicketTypeUnavailableError(DomainError):
    def __init__(self, nombre: str) -> None:
        super().__init__(
            code=ErrorCode.TICKET_TYPE_UNAVAILABLE,
            message=f'El tipo de entrada "{nombre}" no está disponible',
        )


class InsufficientCapacityError(DomainError):
    """Se pidió más de lo que queda; `remaining` es lo disponible al momento del bloqueo."""

    def __init__(self, nombre: str, remaining: int) -> None:
        super().__init__(
            code=ErrorCode.INSUFFICIENT_CAPACITY,
            message=f'Solo quedan {remaining} entradas disponibles para "{nombre}"',
        )
        self.remaining = remaining


class DiscountRejectedError(DomainError):
    def __init__(self, reason, message: str) -> None:
        super().__init__(code=ErrorCode.DISCOUNT_REJECTED, message=message)
        self.reason = reason


class OrderNotFoundError(DomainError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.ORDER_NOT_FOUND, message="Orden no encontrada")


class OrderNotPayableError(DomainError):
    def __init__(self, estado: str) -> None:
        super().__init__(code=ErrorCode.ORDER_NOT_PAYABLE, message="La orden no se puede pagar")
        self.estado = estado


class RetryableOrderError(DomainError):
    """Timeout o conflicto de escritura: no quedó nada persistido, se puede reintentar."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.RETRYABLE,
            message="No pudimos procesar tu orden. Intenta nuevamente.",
        )


class CourtesyNotFoundError(DomainError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.COURTESY_NOT_FOUND, message="Código no válido")


class CourtesyAlreadyClaimedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.COURTESY_ALREADY_CLAIMED,
            message="Este código ya fue canjeado",
        )


class CourtesyExpiredError(DomainError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.COURTESY_EXPIRED, message="Este código ha expirado")


class AttendeeDataRequiredError(DomainError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.ATTENDEE_REQUIRED, message="Nombre y DNI son requeridos")


class TicketNotFoundError(DomainError):
    def __init__(self) -> None:
        super().__init__(code=ErrorCode.TICKET_NOT_FOUND, message="Ticket no encontrado")


class InvalidQRError(DomainError):
    def __init__(self, message: str = "Código QR inválido", reason: str = "INVALID") -> None:
        super().__init__(code=ErrorCode.INVALID_QR, message=message)
        self.reason = reason

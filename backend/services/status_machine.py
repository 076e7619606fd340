"""
Machine d'états des livraisons.
"""
from typing import NamedTuple

from models.common import DeliveryStatus

ALLOWED_TRANSITIONS: dict[DeliveryStatus, list[DeliveryStatus]] = {
    DeliveryStatus.PENDING: [
        DeliveryStatus.COLLECTED,
    ],
    DeliveryStatus.COLLECTED: [
        DeliveryStatus.IN_TRANSIT,
    ],
    DeliveryStatus.IN_TRANSIT: [
        DeliveryStatus.IN_TRANSIT,       # passage d'un hub à l'autre
        DeliveryStatus.OUT_FOR_DELIVERY,
        DeliveryStatus.FAILED,
        DeliveryStatus.RETURNED,
    ],
    DeliveryStatus.OUT_FOR_DELIVERY: [
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
        DeliveryStatus.RETURNED,
    ],
    # États terminaux
    DeliveryStatus.DELIVERED: [],
    DeliveryStatus.FAILED:    [],
    DeliveryStatus.RETURNED:  [],
}

FORWARD_CHAIN: list[DeliveryStatus] = [
    DeliveryStatus.PENDING,
    DeliveryStatus.COLLECTED,
    DeliveryStatus.IN_TRANSIT,
    DeliveryStatus.OUT_FOR_DELIVERY,
    DeliveryStatus.DELIVERED,
]

TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)

STATUS_LABELS: dict[DeliveryStatus, str] = {
    DeliveryStatus.PENDING:          "Aguardando coleta",
    DeliveryStatus.COLLECTED:        "Coletado",
    DeliveryStatus.IN_TRANSIT:       "Em trânsito",
    DeliveryStatus.OUT_FOR_DELIVERY: "Saiu para entrega",
    DeliveryStatus.DELIVERED:        "Entregue",
    DeliveryStatus.FAILED:           "Falha na entrega",
    DeliveryStatus.RETURNED:         "Devolvido",
}

# Progression minimale imposée par un forçage manuel (failed/returned : inchangée)
STATUS_PROGRESS: dict[DeliveryStatus, float] = {
    DeliveryStatus.PENDING:          0.0,
    DeliveryStatus.COLLECTED:        15.0,
    DeliveryStatus.IN_TRANSIT:       50.0,
    DeliveryStatus.OUT_FOR_DELIVERY: 85.0,
    DeliveryStatus.DELIVERED:        100.0,
}


class StatusAdvance(NamedTuple):
    status:           DeliveryStatus
    already_terminal: bool


def is_terminal(status: DeliveryStatus) -> bool:
    return DeliveryStatus(status) in TERMINAL_STATUSES


def status_rank(status: DeliveryStatus) -> int:
    """Position dans la chaîne canonique ; failed/returned sont rangés après delivered."""
    status = DeliveryStatus(status)
    if status in FORWARD_CHAIN:
        return FORWARD_CHAIN.index(status)
    return len(FORWARD_CHAIN)


def is_valid_transition(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    return DeliveryStatus(target) in ALLOWED_TRANSITIONS.get(DeliveryStatus(current), [])


def allowed_next_statuses(current: DeliveryStatus) -> list[DeliveryStatus]:
    return list(ALLOWED_TRANSITIONS.get(DeliveryStatus(current), []))


def advance(current: DeliveryStatus) -> StatusAdvance:
    """
    Statut suivant dans la chaîne canonique.
    Sur un statut terminal : même statut, signalé already_terminal (à traiter
    comme un échec par l'appelant, jamais comme un succès silencieux).
    """
    current = DeliveryStatus(current)
    if current in TERMINAL_STATUSES:
        return StatusAdvance(current, True)
    idx = FORWARD_CHAIN.index(current)
    return StatusAdvance(FORWARD_CHAIN[idx + 1], False)


def label(status: DeliveryStatus) -> str:
    return STATUS_LABELS[DeliveryStatus(status)]

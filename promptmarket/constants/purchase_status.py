from promptmarket.models.purchase import PurchaseStatus

ALLOWED_TRANSITIONS = {
    PurchaseStatus.pending: [
        PurchaseStatus.completed,
        PurchaseStatus.refunded,
        PurchaseStatus.disputed,
        PurchaseStatus.expired,
    ],
    PurchaseStatus.completed: [
        PurchaseStatus.refunding,
        PurchaseStatus.refunded,
        PurchaseStatus.disputed,
    ],
    # back to completed when the provider turns the refund down
    PurchaseStatus.refunding: [PurchaseStatus.refunded, PurchaseStatus.completed],
    PurchaseStatus.refunded: [],
    PurchaseStatus.disputed: [],
    PurchaseStatus.expired: [],
}


def can_transition(current: PurchaseStatus, target: PurchaseStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(PurchaseStatus(current), [])

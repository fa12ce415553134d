# apps/finance/constants.py

from apps.core.state_machine import StateMachine

# ============================================================================
# ESTIMATES
# ============================================================================

ESTIMATE_DRAFT = 'draft'
ESTIMATE_SENT = 'sent'
ESTIMATE_VIEWED = 'viewed'
ESTIMATE_APPROVED = 'approved'
ESTIMATE_DECLINED = 'declined'
ESTIMATE_EXPIRED = 'expired'

ESTIMATE_STATUS_CHOICES = [
    (ESTIMATE_DRAFT, 'Draft'),
    (ESTIMATE_SENT, 'Sent'),
    (ESTIMATE_VIEWED, 'Viewed'),
    (ESTIMATE_APPROVED, 'Approved'),
    (ESTIMATE_DECLINED, 'Declined'),
    (ESTIMATE_EXPIRED, 'Expired'),
]

ESTIMATE_TRANSITIONS = {
    ESTIMATE_DRAFT: {ESTIMATE_SENT},
    ESTIMATE_SENT: {ESTIMATE_VIEWED, ESTIMATE_APPROVED, ESTIMATE_DECLINED, ESTIMATE_EXPIRED},
    ESTIMATE_VIEWED: {ESTIMATE_APPROVED, ESTIMATE_DECLINED, ESTIMATE_EXPIRED},
    ESTIMATE_APPROVED: set(),
    ESTIMATE_DECLINED: set(),
    ESTIMATE_EXPIRED: set(),
}

ESTIMATE_STATE_MACHINE = StateMachine('Estimate', ESTIMATE_TRANSITIONS)

ESTIMATE_EDITABLE_STATUSES = (ESTIMATE_DRAFT,)
ESTIMATE_OPEN_STATUSES = (ESTIMATE_SENT, ESTIMATE_VIEWED)

# ============================================================================
# INVOICES
# ============================================================================

INVOICE_DRAFT = 'draft'
INVOICE_SENT = 'sent'
INVOICE_VIEWED = 'viewed'
INVOICE_PAID = 'paid'
INVOICE_PARTIAL = 'partial'
INVOICE_OVERDUE = 'overdue'
INVOICE_VOID = 'void'

INVOICE_STATUS_CHOICES = [
    (INVOICE_DRAFT, 'Draft'),
    (INVOICE_SENT, 'Sent'),
    (INVOICE_VIEWED, 'Viewed'),
    (INVOICE_PAID, 'Paid'),
    (INVOICE_PARTIAL, 'Partially Paid'),
    (INVOICE_OVERDUE, 'Overdue'),
    (INVOICE_VOID, 'Void'),
]

# Explicit transitions only; paid/partial are derived by the payment ledger
INVOICE_TRANSITIONS = {
    INVOICE_DRAFT: {INVOICE_SENT, INVOICE_VOID},
    INVOICE_SENT: {INVOICE_VIEWED, INVOICE_OVERDUE, INVOICE_VOID},
    INVOICE_VIEWED: {INVOICE_OVERDUE, INVOICE_VOID},
    INVOICE_PARTIAL: {INVOICE_VOID},
    INVOICE_OVERDUE: {INVOICE_VOID},
    INVOICE_PAID: set(),
    INVOICE_VOID: set(),
}

INVOICE_STATE_MACHINE = StateMachine('Invoice', INVOICE_TRANSITIONS)

INVOICE_EDITABLE_STATUSES = (INVOICE_DRAFT, INVOICE_SENT, INVOICE_VIEWED)
INVOICE_PAYABLE_STATUSES = (
    INVOICE_DRAFT, INVOICE_SENT, INVOICE_VIEWED, INVOICE_PARTIAL, INVOICE_OVERDUE,
)
INVOICE_OVERDUE_CANDIDATES = (INVOICE_SENT, INVOICE_VIEWED)

# ============================================================================
# PAYMENTS
# ============================================================================

PAYMENT_METHOD_CHOICES = [
    ('credit_card', 'Credit Card'),
    ('debit_card', 'Debit Card'),
    ('ach', 'ACH'),
    ('cash', 'Cash'),
    ('check', 'Check'),
    ('other', 'Other'),
]

PAYMENT_PENDING = 'pending'
PAYMENT_SUCCEEDED = 'succeeded'
PAYMENT_FAILED = 'failed'
PAYMENT_REFUNDED = 'refunded'

PAYMENT_STATUS_CHOICES = [
    (PAYMENT_PENDING, 'Pending'),
    (PAYMENT_SUCCEEDED, 'Succeeded'),
    (PAYMENT_FAILED, 'Failed'),
    (PAYMENT_REFUNDED, 'Refunded'),
]

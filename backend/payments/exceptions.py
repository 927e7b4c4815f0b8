class PaymentError(Exception):
    code = "payment_error"


class PaymentFailure(PaymentError):
    """The provider declined or rejected the request; the outcome is known."""

    code = "payment_failed"


class PaymentIndeterminate(PaymentError):
    """The provider call timed out or lost its connection; the outcome is unknown."""

    code = "payment_indeterminate"

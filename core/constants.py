# core/constants.py
USER_TYPE_CHOICES = (
    ('client', 'Client'),
    ('transcriber', 'Transcriber'),
    ('admin', 'Admin'),
)

TRANSCRIBER_STATUS_CHOICES = (
    ('pending_assessment', 'Pending Assessment'),  # Signed up, test not yet graded
    ('active', 'Active'),                          # May receive negotiation requests
    ('suspended', 'Suspended'),
    ('rejected', 'Rejected'),
)

TRANSCRIBER_LEVEL_CHOICES = (
    ('trainee', 'Trainee'),
    ('transcriber', 'Transcriber'),
    ('proofreader', 'Proofreader'),
)

NEGOTIATION_STATUS_CHOICES = (
    ('pending', 'Pending'),                                      # Client proposed, awaiting transcriber
    ('transcriber_counter', 'Transcriber Counter'),              # Transcriber countered, awaiting client
    ('client_counter', 'Client Counter'),                        # Client countered back, awaiting transcriber
    ('accepted_awaiting_payment', 'Accepted Awaiting Payment'),  # Price agreed, client must pay
    ('rejected', 'Rejected'),
    ('cancelled', 'Cancelled'),
    ('hired', 'Hired'),                                          # Paid, transcriber locked to the job
    ('completed', 'Completed'),
)

PAYOUT_STATUS_CHOICES = (
    ('awaiting_completion', 'Awaiting Completion'),  # Paid, job still running
    ('pending', 'Pending'),                          # Job completed, payout due
    ('completed', 'Completed'),                      # Paid out to the transcriber
    ('failed', 'Failed'),
)

PAYMENT_PROVIDER_CHOICES = (
    ('paystack', 'Paystack'),
    ('korapay', 'KoraPay'),
    ('chapa', 'Chapa'),
)

NOTIFICATION_STATUS_CHOICES = (
    ('pending', 'Pending'),
    ('sent', 'Sent'),
    ('failed', 'Failed'),
)

# core/constants.py
ROLE_CHOICES = (
    ('admin', 'Admin'),
    ('client', 'Client'),
    ('freelancer', 'Freelancer'),
    ('manager', 'Manager'),
)

# Roles that may sign up on their own; admins are created by staff
SELF_REGISTER_ROLES = ('client', 'freelancer', 'manager')

ACCOUNT_STATUS_CHOICES = (
    ('pending', 'Pending'),          # Registered, awaiting admin approval
    ('active', 'Active'),
    ('suspended', 'Suspended'),      # Blocked until suspended_until
    ('rejected', 'Rejected'),
    ('blacklisted', 'Blacklisted'),
)

JOB_STATUS_CHOICES = (
    ('pending', 'Pending'),                    # Posted by the client, awaiting a manager
    ('accepted', 'Accepted'),                  # Manager accepted, open for bids
    ('approved', 'Approved'),                  # Client approved the delivered work
    ('assigned', 'Assigned'),                  # Writer assigned
    ('in_progress', 'In Progress'),
    ('editing', 'Editing'),                    # Writer submitted, manager reviewing
    ('delivered', 'Delivered'),                # Forwarded to the client
    ('revision', 'Revision'),
    ('revision_pending', 'Revision Pending'),
    ('completed', 'Completed'),
    ('cancelled', 'Cancelled'),
    ('on_hold', 'On Hold'),
    ('paid', 'Paid'),
)

BID_STATUS_CHOICES = (
    ('pending', 'Pending'),      # Freelancer bid, awaiting assignment
    ('accepted', 'Accepted'),
    ('rejected', 'Rejected'),
)

UPLOAD_TYPE_CHOICES = (
    ('initial', 'Initial'),          # Client instructions and references
    ('draft', 'Draft'),
    ('final', 'Final'),
    ('revision', 'Revision'),
    ('additional', 'Additional'),
)

REVISION_STATUS_CHOICES = (
    ('pending', 'Pending'),
    ('sent', 'Sent to Freelancer'),
    ('resolved', 'Resolved'),
)

PAYMENT_METHOD_CHOICES = (
    ('pochi', 'Pochi la Biashara'),  # Manual M-Pesa code, confirmed by an admin
    ('direct', 'Direct STK Push'),
)

PAYMENT_STATUS_CHOICES = (
    ('pending', 'Pending'),
    ('processing', 'Processing'),
    ('confirmed', 'Confirmed'),
    ('failed', 'Failed'),
)

INVOICE_STATUS_CHOICES = (
    ('pending', 'Pending'),
    ('paid', 'Paid'),
    ('cancelled', 'Cancelled'),
)

PAYOUT_METHOD_CHOICES = (
    ('mpesa', 'M-Pesa'),
    ('bank', 'Bank Transfer'),
)

PAYOUT_STATUS_CHOICES = (
    ('pending', 'Pending'),
    ('approved', 'Approved'),      # Balance deducted, awaiting transfer
    ('rejected', 'Rejected'),
    ('processed', 'Processed'),    # Money sent
)

EARNING_TYPE_CHOICES = (
    ('assign', 'Assignment Fee'),
    ('submit', 'Submission Fee'),
)

VERIFICATION_PURPOSE_CHOICES = (
    ('email_verification', 'Email Verification'),
    ('password_reset', 'Password Reset'),
)

ALLOWED_EMAIL_DOMAINS = (
    'gmail.com', 'googlemail.com',
    'yahoo.com', 'ymail.com', 'rocketmail.com',
    'hotmail.com', 'hotmail.co.uk',
    'live.com', 'live.co.uk',
    'outlook.com', 'outlook.co.uk',
    'icloud.com', 'me.com',
    'tasklynk.co.ke',
)

KENYAN_PHONE_REGEX = r'^(?:\+254[17]\d{8}|0[17]\d{8})$'

"""
Pricing rules shared by job creation, payment confirmation and payouts.

All amounts are Kenyan shillings held as ``Decimal``.
"""
from decimal import Decimal, ROUND_HALF_UP

TECHNICAL_KEYWORDS = (
    'excel', 'spss', 'stata', 'r ', ' r', 'python', 'data analysis',
    'programming', 'powerpoint', 'presentation', 'technical', 'coding',
    'jasp', 'jamovi',
)

WRITER_CPP_STANDARD = Decimal('200')
WRITER_CPP_TECHNICAL = Decimal('270')
WRITER_PER_SLIDE = Decimal('100')

CLIENT_MIN_CPP_STANDARD = Decimal('240')
CLIENT_MIN_CPP_TECHNICAL = Decimal('270')
CLIENT_MIN_PER_SLIDE = Decimal('150')

MANAGER_ASSIGN_FEE = Decimal('10.00')
MANAGER_SUBMIT_BASE_FEE = Decimal('10')
MANAGER_SUBMIT_EXTRA_PAGE_FEE = Decimal('5')

URGENT_WINDOW_HOURS = 8
URGENCY_MULTIPLIER = Decimal('1.3')

CENTS = Decimal('0.01')


def _money(value):
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def is_technical(work_type):
    value = (work_type or '').lower()
    return any(keyword in value for keyword in TECHNICAL_KEYWORDS)


def writer_cpp(work_type):
    return WRITER_CPP_TECHNICAL if is_technical(work_type) else WRITER_CPP_STANDARD


def client_min_cpp(work_type):
    return CLIENT_MIN_CPP_TECHNICAL if is_technical(work_type) else CLIENT_MIN_CPP_STANDARD


def writer_earnings(pages, slides, work_type):
    """What the freelancer is paid for a job of this size."""
    pages = pages or 0
    slides = slides or 0
    return _money(pages * writer_cpp(work_type) + slides * WRITER_PER_SLIDE)


def client_minimum(pages, slides, work_type):
    """Lowest amount a client may offer for a job of this size."""
    pages = pages or 0
    slides = slides or 0
    return _money(pages * client_min_cpp(work_type) + slides * CLIENT_MIN_PER_SLIDE)


def manager_submit_fee(pages):
    # 10 for the first page, 5 for each page after it
    pages = pages or 0
    if pages <= 0:
        return Decimal('0.00')
    return _money(MANAGER_SUBMIT_BASE_FEE + MANAGER_SUBMIT_EXTRA_PAGE_FEE * (pages - 1))


def manager_earnings(pages, assigned=True, submitted=True):
    total = Decimal('0')
    if assigned:
        total += MANAGER_ASSIGN_FEE
    if submitted:
        total += manager_submit_fee(pages)
    return _money(total)


def admin_profit(amount, writer_amount, manager_amount):
    return _money(max(Decimal('0'), Decimal(amount) - writer_amount - manager_amount))


def urgency_multiplier(deadline, now):
    """1.3 when the deadline is under eight hours away, else 1.0."""
    hours_left = (deadline - now).total_seconds() / 3600
    if hours_left < URGENT_WINDOW_HOURS:
        return URGENCY_MULTIPLIER
    return Decimal('1.0')

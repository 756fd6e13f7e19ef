from datetime import timedelta
from decimal import Decimal
from django.utils import timezone
from core import pricing


def test_technical_work_types_use_higher_rates():
    assert pricing.is_technical('Excel data analysis')
    assert pricing.is_technical('SPSS Output')
    assert not pricing.is_technical('Essay')
    assert not pricing.is_technical(None)
    assert pricing.writer_cpp('Python coding') == Decimal('270')
    assert pricing.writer_cpp('Essay') == Decimal('200')


def test_writer_earnings_combines_pages_and_slides():
    assert pricing.writer_earnings(3, 0, 'Essay') == Decimal('600.00')
    assert pricing.writer_earnings(2, 4, 'Essay') == Decimal('800.00')
    assert pricing.writer_earnings(2, 0, 'Excel') == Decimal('540.00')
    assert pricing.writer_earnings(None, None, 'Essay') == Decimal('0.00')


def test_client_minimum():
    assert pricing.client_minimum(2, 0, 'Essay') == Decimal('480.00')
    assert pricing.client_minimum(2, 0, 'Stata') == Decimal('540.00')
    assert pricing.client_minimum(0, 10, 'Essay') == Decimal('1500.00')


def test_manager_submit_fee_grows_per_extra_page():
    assert pricing.manager_submit_fee(0) == Decimal('0.00')
    assert pricing.manager_submit_fee(1) == Decimal('10.00')
    assert pricing.manager_submit_fee(4) == Decimal('25.00')


def test_manager_earnings_and_admin_profit():
    assert pricing.manager_earnings(3) == Decimal('30.00')
    assert pricing.manager_earnings(3, assigned=False) == Decimal('20.00')
    assert pricing.admin_profit(Decimal('1000'), Decimal('600.00'), Decimal('30.00')) == Decimal('370.00')
    assert pricing.admin_profit(Decimal('100'), Decimal('600.00'), Decimal('30.00')) == Decimal('0.00')


def test_urgency_multiplier_applies_inside_eight_hours():
    now = timezone.now()
    assert pricing.urgency_multiplier(now + timedelta(hours=7), now) == Decimal('1.3')
    assert pricing.urgency_multiplier(now + timedelta(hours=9), now) == Decimal('1.0')

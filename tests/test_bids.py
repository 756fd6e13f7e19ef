from decimal import Decimal
import pytest
from apps.jobs.models import Bid, JobMessage
from apps.notifications.models import Notification
from .conftest import create_job, create_user

pytestmark = pytest.mark.django_db


@pytest.fixture
def open_job(client_user):
    return create_job(client_user, status='accepted')


def place_bid(api, job, amount='500.00', message='I can do this'):
    return api.post(f'/jobs/{job.pk}/bids/', {'bid_amount': amount, 'message': message}, format='json')


def test_freelancer_bids_on_open_job(auth, open_job, freelancer, admin_user):
    response = place_bid(auth(freelancer), open_job)
    assert response.status_code == 201
    bid = Bid.objects.get(job=open_job, freelancer=freelancer)
    assert bid.bid_amount == Decimal('500.00')
    assert bid.status == 'pending'
    assert Notification.objects.filter(user=admin_user, type='new_bid').exists()


def test_duplicate_bid_conflicts(auth, open_job, freelancer):
    api = auth(freelancer)
    place_bid(api, open_job)
    response = place_bid(api, open_job)
    assert response.status_code == 409
    assert response.data['code'] == 'DUPLICATE_BID'


def test_bidding_rules(auth, client_user, open_job, freelancer):
    response = place_bid(auth(client_user), open_job)
    assert response.data['code'] == 'INVALID_ROLE'

    unapproved = create_user('freelancer', approved=False)
    response = place_bid(auth(unapproved), open_job)
    assert response.data['code'] == 'ACCOUNT_NOT_APPROVED'

    response = place_bid(auth(freelancer), open_job, amount='0')
    assert response.status_code == 400


def test_pending_jobs_are_not_open_for_bids(auth, job, freelancer):
    response = place_bid(auth(freelancer), job)
    assert response.status_code == 404


def test_freelancer_only_sees_own_bids(auth, open_job, freelancer):
    rival = create_user('freelancer')
    Bid.objects.create(job=open_job, freelancer=rival, bid_amount=Decimal('450'))
    place_bid(auth(freelancer), open_job)

    response = auth(freelancer).get(f'/jobs/{open_job.pk}/bids/')
    assert [row['freelancer']['id'] for row in response.data] == [freelancer.pk]


def test_withdraw_pending_bid(auth, open_job, freelancer):
    bid = Bid.objects.create(job=open_job, freelancer=freelancer, bid_amount=Decimal('450'))
    response = auth(freelancer).delete(f'/jobs/bids/{bid.pk}/')
    assert response.status_code == 204
    assert not Bid.objects.filter(pk=bid.pk).exists()

    accepted = Bid.objects.create(job=create_job(open_job.client, status='accepted'), freelancer=freelancer,
                                  bid_amount=Decimal('450'), status='accepted')
    response = auth(freelancer).delete(f'/jobs/bids/{accepted.pk}/')
    assert response.status_code == 400


def test_messages_need_admin_approval(auth, delivered_job, freelancer, admin_user):
    response = auth(freelancer).post(f'/jobs/{delivered_job.pk}/messages/', {'message': 'Draft attached'},
                                     format='json')
    assert response.status_code == 201
    message = JobMessage.objects.get(pk=response.data['id'])
    assert not message.admin_approved

    response = auth(delivered_job.client).get(f'/jobs/{delivered_job.pk}/messages/')
    assert response.data == []

    response = auth(admin_user).post(f'/jobs/messages/{message.pk}/approve/')
    assert response.status_code == 200
    assert Notification.objects.filter(user=delivered_job.client, type='new_message').exists()

    response = auth(delivered_job.client).get(f'/jobs/{delivered_job.pk}/messages/')
    assert [row['id'] for row in response.data] == [message.pk]

"""
Tests for estimates and estimate line items
"""
import pytest
from datetime import date, timedelta
from conftest import make_customer, service_type_id
from database.models import Estimate, EstimateItem
from services.errors import NotFoundError
from services.estimate_repository import EstimateRepository
from services.event_logger import EventLogger
from validators import ValidationError


@pytest.fixture
def repo(db_session, settings):
    return EstimateRepository(db_session, 'user-1', settings)


@pytest.fixture
def estimate_data(customer, property_id):
    return {
        'customer_id': customer['id'],
        'property_id': property_id,
        'title': 'Spring cleanup',
        'valid_until': '2030-05-01',
        'items': [
            {'description': 'Mulch', 'quantity': 4, 'unit_price': 25, 'tax_rate': 7.5},
            {'description': 'Labour', 'quantity': 2, 'unit_price': 40},
        ],
    }


@pytest.mark.unit
class TestCreateEstimate:
    """Tests for drafting estimates"""

    def test_totals_use_percentage_rates(self, repo, estimate_data):
        estimate = repo.create_estimate(estimate_data)

        assert estimate['status'] == 'draft'
        assert estimate['subtotal'] == 180.0
        assert estimate['tax_amount'] == 7.5
        assert estimate['total_amount'] == 187.5
        assert [i['total'] for i in estimate['items']] == [107.5, 80.0]

    def test_default_valid_until(self, repo, estimate_data):
        del estimate_data['valid_until']
        estimate = repo.create_estimate(estimate_data)
        assert estimate['valid_until'] == (date.today() + timedelta(days=30)).isoformat()

    def test_item_from_catalog(self, db_session, repo, estimate_data):
        estimate_data['items'] = [{'service_type_id': service_type_id(db_session), 'quantity': 2}]
        estimate = repo.create_estimate(estimate_data)

        item = estimate['items'][0]
        assert item['description'] == 'Basic Lawn Maintenance'
        assert item['unit_price'] == 65.0
        assert estimate['total_amount'] == 130.0

    def test_requires_items(self, repo, estimate_data):
        estimate_data['items'] = []
        with pytest.raises(ValidationError) as exc:
            repo.create_estimate(estimate_data)
        assert exc.value.message == 'Please add at least one item'

    def test_negative_price(self, repo, estimate_data):
        estimate_data['items'][0]['unit_price'] = -5
        with pytest.raises(ValidationError) as exc:
            repo.create_estimate(estimate_data)
        assert 'items.0.unit_price' in exc.value.errors

    def test_property_must_belong_to_customer(self, db_session, repo, estimate_data):
        other = make_customer(db_session, email='other@example.com', billing_address='5 Birch Lane')
        estimate_data['customer_id'] = other['id']
        with pytest.raises(ValidationError):
            repo.create_estimate(estimate_data)

    def test_bad_item_leaves_nothing_behind(self, db_session, repo, estimate_data):
        estimate_data['items'].append({'service_type_id': 'missing'})
        with pytest.raises(NotFoundError):
            repo.create_estimate(estimate_data)
        assert db_session.query(Estimate).count() == 0
        assert db_session.query(EstimateItem).count() == 0

    def test_creation_is_logged(self, db_session, repo, estimate_data):
        estimate = repo.create_estimate(estimate_data)
        history = EventLogger(db_session).get_entity_history('estimate', estimate['id'])
        assert history[0]['event_type'] == 'CREATED'


@pytest.mark.unit
class TestUpdateEstimate:

    def test_replace_items(self, db_session, repo, estimate_data):
        estimate = repo.create_estimate(estimate_data)
        updated = repo.update_estimate(estimate['id'], {
            'items': [{'description': 'Aeration', 'quantity': 1, 'unit_price': 99}]
        })
        assert updated['total_amount'] == 99.0
        assert len(updated['items']) == 1
        assert db_session.query(EstimateItem).count() == 1

    def test_blank_title(self, repo, estimate_data):
        estimate = repo.create_estimate(estimate_data)
        with pytest.raises(ValidationError):
            repo.update_estimate(estimate['id'], {'title': ' '})

    def test_status_change(self, db_session, repo, estimate_data):
        estimate = repo.create_estimate(estimate_data)
        assert repo.update_status(estimate['id'], 'accepted')['status'] == 'accepted'

        history = EventLogger(db_session).get_entity_history('estimate', estimate['id'])
        assert history[0]['event_type'] == 'STATUS_CHANGED'

    def test_invalid_status(self, repo, estimate_data):
        estimate = repo.create_estimate(estimate_data)
        with pytest.raises(ValidationError):
            repo.update_status(estimate['id'], 'maybe')

    def test_delete(self, db_session, repo, estimate_data):
        estimate = repo.create_estimate(estimate_data)
        repo.delete_estimate(estimate['id'])
        assert db_session.query(EstimateItem).count() == 0
        with pytest.raises(NotFoundError):
            repo.get_estimate(estimate['id'])


@pytest.mark.unit
class TestEstimateQueries:

    def test_list_search_and_status(self, repo, estimate_data):
        repo.create_estimate(estimate_data)
        second = repo.create_estimate({**estimate_data, 'title': 'Fall aeration'})
        repo.update_status(second['id'], 'sent')

        assert [e['title'] for e in repo.list_estimates(search='aeration')] == ['Fall aeration']
        assert [e['status'] for e in repo.list_estimates(status='sent')] == ['sent']

    def test_mark_expired(self, repo, estimate_data):
        draft = repo.create_estimate(estimate_data)
        accepted = repo.create_estimate(estimate_data)
        repo.update_status(accepted['id'], 'accepted')

        assert repo.mark_expired(today=date(2030, 5, 2)) == 1
        assert repo.get_estimate(draft['id'])['status'] == 'expired'
        assert repo.get_estimate(accepted['id'])['status'] == 'accepted'

    def test_not_expired_on_last_day(self, repo, estimate_data):
        repo.create_estimate(estimate_data)
        assert repo.mark_expired(today=date(2030, 5, 1)) == 0


@pytest.mark.unit
class TestEstimateContent:

    def test_email(self, repo, estimate_data):
        content = repo.build_estimate_email(repo.create_estimate(estimate_data))
        assert content['subject'] == 'Estimate: Spring cleanup'
        assert 'Dear Jane Doe' in content['text']
        assert '12 Elm Street' in content['text']
        assert '$187.50' in content['text']

    def test_sms_links_to_estimate(self, repo, estimate_data):
        estimate = repo.create_estimate(estimate_data)
        sms = repo.build_estimate_sms(estimate)
        assert sms.startswith('Hi Jane')
        assert sms.endswith(f"/estimates/{estimate['id']}/view")

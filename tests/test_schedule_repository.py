"""
Tests for the service catalog, scheduled services and recurring visits
"""
import pytest
from datetime import date
from conftest import make_schedule, make_technician, service_type_id
from database.models import ServiceSchedule, ServiceScheduleInstance
from services.errors import NotFoundError
from services.schedule_repository import ScheduleRepository
from validators import ValidationError

# Monday
FIRST_VISIT = date(2030, 6, 3)


@pytest.fixture
def repo(db_session, settings):
    return ScheduleRepository(db_session, 'user-1', settings)


def recurring(property_id, **overrides):
    data = {
        'property_id': property_id,
        'scheduled_date': FIRST_VISIT.isoformat(),
        'description': 'Weekly mow',
        'base_price': 45,
        'is_recurring': True,
        'recurrence_type': 'weekly',
        'end_date': '2030-07-31',
    }
    data.update(overrides)
    return data


@pytest.mark.unit
class TestServiceTypes:
    """Tests for the service catalog"""

    def test_seeded_catalog(self, repo):
        labels = [t['label'] for t in repo.list_service_types()]
        assert 'Basic Lawn Maintenance' in labels
        assert labels == sorted(labels)

    def test_create_service_type(self, repo):
        created = repo.create_service_type({'name': 'leaf_removal', 'label': 'Leaf Removal', 'base_price': 80})
        assert created['unit_type'] == 'flat_rate'
        assert created['base_price'] == 80.0

    def test_duplicate_label(self, repo):
        with pytest.raises(ValidationError) as exc:
            repo.create_service_type({'name': 'basic', 'label': 'Basic Lawn Maintenance'})
        assert exc.value.field == 'label'

    def test_invalid_unit_type(self, repo):
        with pytest.raises(ValidationError):
            repo.create_service_type({'name': 'x', 'label': 'X', 'unit_type': 'per_hour'})

    def test_update_price(self, db_session, repo):
        updated = repo.update_service_type(service_type_id(db_session), {'base_price': 70})
        assert updated['base_price'] == 70.0


@pytest.mark.unit
class TestCreateSchedule:
    """Tests for scheduling services"""

    def test_catalog_service_uses_type_price(self, db_session, property_id, settings):
        schedule = make_schedule(db_session, property_id, settings)
        assert schedule['display_name'] == 'Basic Lawn Maintenance'
        assert schedule['base_price'] == 65.0
        assert schedule['scheduled_time_window'] == 'morning'
        assert schedule['status'] == 'scheduled'
        assert schedule['next_scheduled_date'] is None

    def test_price_override(self, db_session, property_id, settings):
        schedule = make_schedule(db_session, property_id, settings, base_price=90)
        assert schedule['base_price'] == 90.0

    def test_custom_service_needs_description_and_price(self, repo, property_id):
        with pytest.raises(ValidationError) as exc:
            repo.create_schedule({'property_id': property_id, 'scheduled_date': '2030-06-03', 'base_price': 0})
        assert set(exc.value.errors) == {'description', 'base_price'}

    def test_custom_service(self, repo, property_id):
        schedule = repo.create_schedule({
            'property_id': property_id,
            'scheduled_date': '2030-06-03',
            'description': 'Pond cleanup',
            'base_price': 120,
        })
        assert schedule['service_type'] is None
        assert schedule['display_name'] == 'Pond cleanup'

    def test_recurring_needs_end_date(self, repo, property_id):
        with pytest.raises(ValidationError) as exc:
            repo.create_schedule(recurring(property_id, end_date=None))
        assert exc.value.field == 'end_date'

    def test_custom_recurrence_needs_days(self, repo, property_id):
        with pytest.raises(ValidationError) as exc:
            repo.create_schedule(recurring(property_id, recurrence_type='custom', recurrence_days=[]))
        assert exc.value.field == 'recurrence_days'

    def test_end_before_start(self, repo, property_id):
        with pytest.raises(ValidationError) as exc:
            repo.create_schedule(recurring(property_id, end_date='2030-05-01'))
        assert exc.value.message == 'End date cannot be before the start date'

    def test_unknown_property(self, repo):
        with pytest.raises(NotFoundError):
            repo.create_schedule(recurring('nowhere'))

    def test_inactive_technician(self, db_session, repo, property_id):
        technician = make_technician(db_session, status='inactive')
        with pytest.raises(ValidationError):
            repo.create_schedule(recurring(property_id, assigned_technician_id=technician['id']))


@pytest.mark.unit
class TestRecurringSchedules:
    """Tests for recurrence dates and visit materialisation"""

    def test_next_date_without_auto_schedule(self, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id))
        assert schedule['start_date'] == '2030-06-03'
        assert schedule['next_scheduled_date'] == '2030-06-10'
        assert repo.list_instances(schedule_id=schedule['id']) == []

    def test_auto_schedule_materialises_first_visit(self, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id, auto_schedule=True))

        instances = repo.list_instances(schedule_id=schedule['id'])
        assert [i['scheduled_date'] for i in instances] == ['2030-06-10']
        assert instances[0]['status'] == 'pending'
        assert schedule['last_scheduled_date'] == '2030-06-10'
        assert schedule['next_scheduled_date'] == '2030-06-17'

    def test_custom_days(self, repo, property_id):
        # Wednesday and Friday
        schedule = repo.create_schedule(recurring(property_id, recurrence_type='custom', recurrence_days=[3, 5]))
        assert schedule['next_scheduled_date'] == '2030-06-05'

    def test_generate_due_instances(self, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id, auto_schedule=True))

        created = repo.generate_due_instances(as_of=FIRST_VISIT, horizon_days=21)
        assert [i['scheduled_date'] for i in created] == ['2030-06-17', '2030-06-24']
        assert repo.get_schedule(schedule['id'])['next_scheduled_date'] == '2030-07-01'

        assert repo.generate_due_instances(as_of=FIRST_VISIT, horizon_days=21) == []

    def test_generation_stops_at_end_date(self, repo, property_id):
        repo.create_schedule(recurring(property_id, auto_schedule=True, end_date='2030-06-20'))
        created = repo.generate_due_instances(as_of=FIRST_VISIT, horizon_days=60)
        assert [i['scheduled_date'] for i in created] == ['2030-06-17']

    def test_cancelled_schedules_skipped(self, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id, auto_schedule=True))
        repo.update_status(schedule['id'], 'cancelled')
        assert repo.generate_due_instances(as_of=FIRST_VISIT, horizon_days=60) == []

    def test_changing_frequency_recomputes(self, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id))
        updated = repo.update_schedule(schedule['id'], {'recurrence_type': 'bi_weekly'})
        assert updated['next_scheduled_date'] == '2030-06-17'

    def test_stop_recurring(self, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id))
        updated = repo.update_schedule(schedule['id'], {'is_recurring': False})
        assert updated['next_scheduled_date'] is None


@pytest.mark.unit
class TestScheduleUpdates:

    def test_interval_checked_without_recurring_flag(self, db_session, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id))
        with pytest.raises(ValidationError) as exc:
            repo.update_schedule(schedule['id'], {'recurrence_interval': '2'})
        assert exc.value.field == 'recurrence_interval'
        assert db_session.get(ServiceSchedule, schedule['id']).recurrence_interval == 1

    def test_interval_update(self, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id))
        updated = repo.update_schedule(schedule['id'], {'recurrence_interval': 2})
        assert updated['recurrence_interval'] == 2

    def test_switch_to_catalog_service_resets_price(self, db_session, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id, is_recurring=False))
        updated = repo.update_schedule(schedule['id'], {'service_type_id': service_type_id(db_session)})
        assert updated['base_price'] == 65.0
        assert updated['display_name'] == 'Basic Lawn Maintenance'

    def test_switch_to_custom_needs_price(self, db_session, repo, property_id, settings):
        schedule = make_schedule(db_session, property_id, settings)
        with pytest.raises(ValidationError):
            repo.update_schedule(schedule['id'], {'service_type_id': None, 'description': 'Odd job',
                                                  'base_price': 0})

    def test_completion_with_auto_invoice(self, db_session, repo, property_id, settings):
        schedule = make_schedule(db_session, property_id, settings, auto_invoice=True)
        completed = repo.update_status(schedule['id'], 'completed')

        invoice = completed['invoice']
        assert invoice['total'] == 65.0
        assert invoice['service_schedule_id'] == schedule['id']
        assert repo.get_schedule(schedule['id'])['invoice_id'] == invoice['id']

    def test_completion_without_auto_invoice(self, db_session, repo, property_id, settings):
        schedule = make_schedule(db_session, property_id, settings)
        assert repo.update_status(schedule['id'], 'completed')['invoice'] is None

    def test_invalid_status(self, db_session, repo, property_id, settings):
        schedule = make_schedule(db_session, property_id, settings)
        with pytest.raises(ValidationError):
            repo.update_status(schedule['id'], 'done')

    def test_list_filters(self, db_session, repo, property_id, settings):
        make_schedule(db_session, property_id, settings, scheduled_date='2030-06-03')
        make_schedule(db_session, property_id, settings, scheduled_date='2030-06-10', status='completed')

        assert len(repo.list_schedules(date_from='2030-06-05')) == 1
        assert [s['status'] for s in repo.list_schedules(status='completed')] == ['completed']
        assert [s['scheduled_date'] for s in repo.list_schedules(sort_order='desc')] == ['2030-06-10', '2030-06-03']


@pytest.mark.unit
class TestDeleteSchedule:

    def test_delete_removes_instances(self, db_session, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id, auto_schedule=True))
        repo.delete_schedule(schedule['id'])
        assert db_session.get(ServiceSchedule, schedule['id']) is None
        assert db_session.query(ServiceScheduleInstance).count() == 0

    def test_invoiced_service_kept(self, db_session, repo, property_id, settings):
        schedule = make_schedule(db_session, property_id, settings, auto_invoice=True)
        repo.update_status(schedule['id'], 'completed')
        with pytest.raises(ValidationError) as exc:
            repo.delete_schedule(schedule['id'])
        assert exc.value.message == 'Invoiced services cannot be deleted'


@pytest.mark.unit
class TestInstances:
    """Tests for individual visits"""

    def first_instance(self, repo, property_id):
        schedule = repo.create_schedule(recurring(property_id, auto_schedule=True))
        return repo.list_instances(schedule_id=schedule['id'])[0]

    def test_reschedule(self, repo, property_id):
        instance = self.first_instance(repo, property_id)
        updated = repo.update_instance(instance['id'], {'scheduled_date': '2030-06-11'})
        assert updated['status'] == 'rescheduled'
        assert updated['scheduled_date'] == '2030-06-11'

    def test_complete(self, repo, property_id):
        instance = self.first_instance(repo, property_id)
        updated = repo.update_instance(instance['id'], {'status': 'completed', 'notes': 'Done early'})
        assert updated['completed_at'] is not None
        assert updated['notes'] == 'Done early'

    def test_assign_crew(self, repo, property_id):
        from services.crew_repository import CrewRepository
        crew = CrewRepository(repo.session).create_crew({'name': 'East'})
        instance = self.first_instance(repo, property_id)
        assert repo.update_instance(instance['id'], {'crew_id': crew['id']})['crew_id'] == crew['id']

    def test_invalid_status(self, repo, property_id):
        instance = self.first_instance(repo, property_id)
        with pytest.raises(ValidationError):
            repo.update_instance(instance['id'], {'status': 'lost'})

"""Member JSON API"""

from datetime import date, timedelta

import pytest

from routes.member_routes import CANCEL_ERRORS, OUTCOME_ERRORS
from services import admission, errors
from utils.date_utils import next_month_window


def book(client, headers, schedule_id):
    return client.post('/book-class', json={'schedule_id': schedule_id}, headers=headers)


class TestAuthentication:
    def test_missing_token(self, client, gym):
        response = client.post('/book-class', json={'schedule_id': gym['yoga']})
        assert response.status_code == 401
        assert response.get_json()['code'] == 'UNAUTHORIZED'

    def test_tampered_token(self, client, gym, auth_headers):
        headers = auth_headers('u1')
        headers['Authorization'] += 'x'
        response = book(client, headers, gym['yoga'])
        assert response.status_code == 401
        assert response.get_json()['code'] == 'INVALID_TOKEN'


class TestBookClass:
    def test_success(self, client, store, gym, auth_headers, class_start):
        store.give_package('u1', gym['package'], class_start)

        response = book(client, auth_headers('u1'), gym['funcional'])

        assert response.status_code == 201
        body = response.get_json()
        assert body['message'] == 'Booking successful'
        assert body['booking_id'] == store.bookings_of('u1')[0]['id']

    def test_missing_schedule_id(self, client, auth_headers):
        response = client.post('/book-class', json={}, headers=auth_headers('u1'))
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Schedule ID is required'

    def test_invalid_schedule_id(self, client, auth_headers):
        response = book(client, auth_headers('u1'), 'abc')
        assert response.status_code == 400

    def test_already_booked(self, client, store, gym, auth_headers, class_start):
        store.give_package('u1', gym['package'], class_start)
        headers = auth_headers('u1')
        book(client, headers, gym['funcional'])

        response = book(client, headers, gym['funcional'])

        assert response.status_code == 409
        assert response.get_json()['code'] == 'ALREADY_BOOKED'

    def test_unknown_schedule(self, client, store, auth_headers):
        response = book(client, auth_headers('u1'), 999)

        assert response.status_code == 404
        assert response.get_json()['code'] == 'SCHEDULE_NOT_FOUND'
        assert store.bookings_of('u1') == []

    def test_class_full(self, client, store, auth_headers, class_start):
        class_id = store.add_class('Yoga Flow', 'Yoga', capacity=1)
        schedule_id = store.add_schedule(class_id, class_start)
        package_id = store.add_package('Yoga', [('Yoga', 4)])
        store.give_package('u2', package_id, class_start)
        store.add_booking('u1', schedule_id)

        response = book(client, auth_headers('u2'), schedule_id)

        assert response.status_code == 409
        assert response.get_json()['code'] == 'CLASS_FULL'

    def test_fifth_yoga_rejected_before_admission(self, client, store, gym, auth_headers, class_start):
        store.give_package('u1', gym['package'], class_start)
        headers = auth_headers('u1')
        schedules = [store.add_schedule(gym['yoga_class'], class_start + timedelta(hours=i))
                     for i in range(1, 6)]

        for schedule_id in schedules[:4]:
            assert book(client, headers, schedule_id).status_code == 201

        response = book(client, headers, schedules[4])

        assert response.status_code == 403
        body = response.get_json()
        assert body['code'] == 'NO_CREDITS_LEFT'
        assert body['error'] == 'You have no Yoga credits left this month.'
        assert store.booking_count(schedules[4]) == 0

    def test_no_package(self, client, gym, auth_headers):
        response = book(client, auth_headers('u1'), gym['yoga'])

        assert response.status_code == 403
        assert response.get_json()['code'] == 'NO_PACKAGE'

    def test_class_type_not_in_package(self, client, store, gym, auth_headers, class_start):
        pilates = store.add_class('Pilates Mat', 'Pilates')
        schedule_id = store.add_schedule(pilates, class_start)
        store.give_package('u1', gym['package'], class_start)

        response = book(client, auth_headers('u1'), schedule_id)

        assert response.status_code == 403
        assert response.get_json()['code'] == 'TYPE_NOT_COVERED'

    def test_credits_enforced_without_precheck(self, app, client, gym, auth_headers):
        app.config['CREDIT_PRECHECK_ENABLED'] = False

        response = book(client, auth_headers('u1'), gym['yoga'])

        assert response.status_code == 403
        assert response.get_json()['code'] == 'NO_CREDITS'

    def test_retry_after_last_credit_is_already_booked(self, client, store, gym, auth_headers, class_start):
        package_id = store.add_package('Yoga 1', [('Yoga', 1)])
        store.give_package('u1', package_id, class_start)
        headers = auth_headers('u1')

        assert book(client, headers, gym['yoga']).status_code == 201
        response = book(client, headers, gym['yoga'])

        assert response.status_code == 409
        assert response.get_json()['code'] == 'ALREADY_BOOKED'

    def test_insert_failure(self, client, store, gym, auth_headers, class_start):
        store.give_package('u1', gym['package'], class_start)
        store.failures.add('insert_booking')

        response = book(client, auth_headers('u1'), gym['yoga'])

        assert response.status_code == 500
        assert response.get_json()['code'] == 'ERROR_INSERT_FAILED'


class TestCancelBooking:
    def test_cancel_own_booking(self, client, store, gym, auth_headers):
        booking_id = store.add_booking('u1', gym['yoga'])

        response = client.post('/cancel-booking', json={'booking_id': booking_id},
                               headers=auth_headers('u1'))

        assert response.status_code == 200
        assert store.booking_count(gym['yoga']) == 0

    def test_cancel_someone_elses_booking(self, client, store, gym, auth_headers):
        booking_id = store.add_booking('owner', gym['yoga'])

        response = client.post('/cancel-booking', json={'booking_id': booking_id},
                               headers=auth_headers('intruder'))

        assert response.status_code == 403
        assert store.booking_count(gym['yoga']) == 1

    def test_cancel_unknown_booking(self, client, auth_headers):
        response = client.post('/cancel-booking', json={'booking_id': 77}, headers=auth_headers('u1'))
        assert response.status_code == 404

    def test_cancel_without_id(self, client, auth_headers):
        response = client.post('/cancel-booking', json={}, headers=auth_headers('u1'))
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Booking ID is required'


class TestListings:
    def test_schedules(self, client, store, gym, auth_headers):
        store.add_booking('u1', gym['yoga'])
        store.add_booking('u2', gym['yoga'])

        response = client.get('/schedules', headers=auth_headers('u1'))

        assert response.status_code == 200
        body = response.get_json()
        assert body['count'] == 2
        by_id = {s['id']: s for s in body['schedules']}
        assert by_id[gym['yoga']]['booked_spots'] == 2
        assert by_id[gym['yoga']]['available_spots'] == 8
        assert by_id[gym['yoga']]['is_booked_by_user'] is True
        assert by_id[gym['funcional']]['is_booked_by_user'] is False

    def test_schedules_only_with_credits(self, client, store, gym, auth_headers, class_start):
        package_id = store.add_package('Yoga', [('Yoga', 4)])
        store.give_package('u1', package_id, class_start)

        response = client.get('/schedules?only_with_credits=1', headers=auth_headers('u1'))

        assert [s['id'] for s in response.get_json()['schedules']] == [gym['yoga']]

    def test_schedules_bad_days(self, client, auth_headers):
        response = client.get('/schedules?days=0', headers=auth_headers('u1'))
        assert response.status_code == 400

    def test_my_bookings(self, client, store, gym, auth_headers):
        store.add_booking('u1', gym['funcional'])
        store.add_booking('u2', gym['yoga'])

        response = client.get('/my-bookings', headers=auth_headers('u1'))

        bookings = response.get_json()['bookings']
        assert len(bookings) == 1
        assert bookings[0]['schedule']['id'] == gym['funcional']


class TestPackages:
    def test_list_active_packages(self, client, store, gym, auth_headers):
        store.add_package('Retired', [('Boxeo', 4)], is_active=False)

        response = client.get('/packages', headers=auth_headers('u1'))

        packages = response.get_json()['packages']
        assert [p['name'] for p in packages] == ['Mixto']
        assert packages[0]['items'] == [
            {'class_type': 'Yoga', 'credits': 4},
            {'class_type': 'Funcional', 'credits': 8},
        ]

    def test_acquire_for_next_month(self, client, gym, auth_headers):
        headers = auth_headers('u1')

        response = client.post('/packages/acquire', json={'package_id': gym['package']}, headers=headers)

        assert response.status_code == 201
        first, last = next_month_window(date.today())
        assert response.get_json()['valid_from'] == first.isoformat()
        assert response.get_json()['valid_until'] == last.isoformat()

        again = client.post('/packages/acquire', json={'package_id': gym['package']}, headers=headers)
        assert again.status_code == 409

    def test_acquire_inactive_package(self, client, store, auth_headers):
        package_id = store.add_package('Retired', [('Boxeo', 4)], is_active=False)

        response = client.post('/packages/acquire', json={'package_id': package_id},
                               headers=auth_headers('u1'))

        assert response.status_code == 404

    def test_credits_summary(self, client, store, gym, auth_headers):
        store.give_package('u1', gym['package'], date.today())
        client.post('/packages/acquire', json={'package_id': gym['package']}, headers=auth_headers('u1'))

        body = client.get('/credits', headers=auth_headers('u1')).get_json()

        assert body['current_month']['has_package'] is True
        assert body['current_month']['package_name'] == 'Mixto'
        assert body['next_month']['has_package'] is True
        assert body['next_month']['month'] == next_month_window(date.today())[0].strftime('%Y-%m')


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_unknown_route_keeps_404(client):
    assert client.get('/nope').status_code == 404


def test_every_failed_outcome_has_an_error():
    assert set(OUTCOME_ERRORS) == set(admission.OUTCOMES) - {admission.SUCCESS}


@pytest.mark.parametrize('outcome, status', [
    (admission.ALREADY_BOOKED, 409),
    (admission.CLASS_FULL, 409),
    (admission.SCHEDULE_NOT_FOUND, 404),
    (admission.NO_CREDITS, 403),
    (admission.ERROR_INSERT_FAILED, 500),
])
def test_outcome_status_comes_from_error_kind(outcome, status):
    error_class, _ = OUTCOME_ERRORS[outcome]
    assert error_class('x').status == errors.status_for(error_class.kind) == status


def test_cancel_errors_follow_their_kind():
    for kind, (error_class, _) in CANCEL_ERRORS.items():
        assert error_class.kind == kind


def test_book_class_with_stale_category(client, store, auth_headers, class_start):
    class_id = store.add_class('Reformer', 'Pilates Reformer', category='Pilates')
    schedule_id = store.add_schedule(class_id, class_start)
    package_id = store.add_package('Reformer', [('Pilates Reformer', 8)])
    store.give_package('u1', package_id, class_start)

    response = client.post('/book-class', json={'schedule_id': schedule_id},
                           headers=auth_headers('u1'))

    assert response.status_code == 201
